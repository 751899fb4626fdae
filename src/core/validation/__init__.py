"""
Guildhall Validation Package

Exposes `InputValidator`, the single source of truth for low-level input
validation. Business rules stay in services; authorization stays in
`src.modules.community.policy`.
"""

from src.core.validation.input_validator import InputValidator

__all__ = [
    "InputValidator",
]
