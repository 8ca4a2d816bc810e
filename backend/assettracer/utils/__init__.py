"""
Shared helpers: JSON coercion for storage payloads and response envelopes.
"""

from .json_encoder import deep_serialize, safe_json_dumps, safe_json_loads

__all__ = [
    'deep_serialize',
    'safe_json_dumps',
    'safe_json_loads',
]
