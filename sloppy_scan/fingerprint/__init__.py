from .generator import generate_fingerprint
from .packing import pack_fingerprints

__all__ = ["generate_fingerprint", "pack_fingerprints"]
