from eks_token.credential import ExecCredential, TokenRequest
from eks_token.exceptions import (
    EKSTokenError,
    InputError,
    IssuanceError,
    KubeconfigError,
    StorageError,
    VerificationError,
)

__version__ = "0.1.0"
