from .parsing import parse_issues
from .runner import ScanRunner, dedupe_issues
from .verification import VerificationResult, verify_issues

__all__ = ["ScanRunner", "VerificationResult", "dedupe_issues", "parse_issues", "verify_issues"]
