"""
Bastion - File access security engine.

Gates:
- PathGate: validates untrusted paths against a policy snapshot
- SignatureGate: identifies file content from its leading bytes
- SensitiveGate: recognizes credential, key and history files
- ReaderGate: reads files through all of the above, with an audit trail
- Config: settings and the Policy Source
"""

from bastion import SensitiveGate
from bastion import SignatureGate
from bastion import PathGate
from bastion import Config
from bastion import ReaderGate

__version__ = "0.1.0"

__all__ = [
    "SensitiveGate",
    "SignatureGate",
    "PathGate",
    "Config",
    "ReaderGate",
    "__version__",
]
