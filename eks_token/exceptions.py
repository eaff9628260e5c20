class EKSTokenError(Exception):
    """Base class for every failure that ends an invocation."""


class InputError(EKSTokenError):
    pass


class IssuanceError(EKSTokenError):
    pass


class StorageError(EKSTokenError):
    pass


class VerificationError(EKSTokenError):
    pass


class KubeconfigError(EKSTokenError):
    pass
