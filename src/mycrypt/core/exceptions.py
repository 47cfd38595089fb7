"""
Exceptions for the mycrypt core.
Everything raised on purpose derives from MyCryptError so callers have a
single thing to catch.
"""


class MyCryptError(Exception):
    # general container for errors
    pass


class ParameterError(MyCryptError):
    # raised for out-of-range KDF parameters, salt, key, nonce or chunk size
    pass


class ResourceError(MyCryptError):
    # raised when the KDF cannot allocate the requested memory
    pass


class FormatError(MyCryptError):
    # raised on unknown magic/version or a malformed header or frame
    pass


class AuthenticationError(MyCryptError):
    # raised when a tag does not verify (wrong passphrase or tampering, not distinguished)
    pass


class StreamIntegrityError(MyCryptError):
    # raised when chunk order is wrong or data follows the terminal chunk
    pass


class TruncationError(MyCryptError):
    # raised when a stream ends before its terminal chunk
    pass


class PasswordError(MyCryptError):
    # raised when no usable passphrase can be resolved
    pass


class OutputPathError(MyCryptError):
    # raised when an output path cannot be derived from the input path
    pass
