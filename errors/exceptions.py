"""
Custom exception classes for the account proof node
"""

class ProofNodeError(Exception):
    """Base exception for proof node operations"""
    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        self.message = message
        self.code = code or "PROOF_NODE_ERROR"

class ConfigError(ProofNodeError):
    """Configuration file or value is invalid"""
    def __init__(self, message: str):
        super().__init__(message, "CONFIG_ERROR")

class DecodingError(ProofNodeError):
    """Malformed hash string, pubkey or sysvar payload"""
    def __init__(self, message: str):
        super().__init__(message, "DECODING_ERROR")

class SlotError(ProofNodeError):
    """A single slot could not be finalized; other slots are unaffected"""
    def __init__(self, slot: int, message: str, code: str = "SLOT_ERROR"):
        super().__init__(f"slot {slot}: {message}", code)
        self.slot = slot

class SlotDataMissingError(SlotError):
    """Block metadata, signature count or account table absent at finalization"""
    def __init__(self, slot: int, missing: str):
        super().__init__(slot, f"{missing} not available", "SLOT_DATA_MISSING")
        self.missing = missing

class SlotNotApplicableError(SlotError):
    """No monitored account was touched in the slot"""
    def __init__(self, slot: int):
        super().__init__(slot, "monitored account not modified", "SLOT_NOT_APPLICABLE")

class SignatureCountOverflowError(SlotError):
    """Summed signature count does not fit the u64 bank hash field"""
    def __init__(self, slot: int, num_sigs: int):
        super().__init__(slot, f"signature count {num_sigs} exceeds u64", "SIGNATURE_COUNT_OVERFLOW")
        self.num_sigs = num_sigs

class VerificationError(ProofNodeError):
    """Base class for proof verification failures"""

class ProofInvalidError(VerificationError):
    """Merkle path does not fold to the asserted account delta hash"""
    def __init__(self, message: str = "Account delta proof invalid"):
        super().__init__(message, "PROOF_INVALID")

class RootMismatchError(VerificationError):
    """Recomposed bank hash differs from the asserted root"""
    def __init__(self, message: str = "Bank hash mismatch"):
        super().__init__(message, "ROOT_MISMATCH")

class SnapshotMismatchError(VerificationError):
    """Proven account state differs from an independently fetched snapshot"""
    def __init__(self, message: str = "Account snapshot mismatch"):
        super().__init__(message, "SNAPSHOT_MISMATCH")

class TransportError(ProofNodeError):
    """Subscriber or ingestion connection errors"""
    def __init__(self, message: str, code: str = "TRANSPORT_ERROR"):
        super().__init__(message, code)

class FrameError(TransportError):
    """Truncated or oversized length-prefixed frame"""
    def __init__(self, message: str):
        super().__init__(message, "FRAME_ERROR")

class BackpressureError(ProofNodeError):
    """Ingress queue is full and the policy is to reject"""
    def __init__(self, message: str = "Ingress queue full"):
        super().__init__(message, "BACKPRESSURE_ERROR")
