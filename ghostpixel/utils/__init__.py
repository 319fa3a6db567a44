"""Cross-cutting utilities (lowest dependency layer).

    - Logging setup (logging_config)
    - YAML loading (fs)

No module in utils/ may import from upper layers (engine, client, canvas).
"""

from . import fs
from . import logging_config
from .logging_config import push_context, setup_logging

__all__ = [
    'fs',
    'logging_config',
    'push_context',
    'setup_logging',
]
