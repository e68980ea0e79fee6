"""Template substitution and stdin preparation for full-problem submissions."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from codejudge.core.exceptions import ValidationError


class CodeWrapper:
    def __init__(self, placeholder: str = "{USER_CODE}"):
        self.placeholder = placeholder

    def wrap(self, user_code: str, template: Any, language: Optional[str] = None) -> str:
        """Insert ``user_code`` at the template's placeholder (first occurrence)."""
        wrapper_code = getattr(template, "wrapper_code", None) if template is not None else None
        if not wrapper_code:
            raise ValidationError(f"Wrapper code missing for language {language or getattr(template, 'language', None)}")
        if self.placeholder not in wrapper_code:
            raise ValidationError(f"Wrapper code for language {template.language} has no {self.placeholder} placeholder")
        return wrapper_code.replace(self.placeholder, user_code, 1)

    @staticmethod
    def prepare_stdin(test_input: Any, function_params: Optional[List[Dict[str, Any]]]) -> str:
        """One compact JSON value per function parameter, one per line.

        Values are looked up under ``input["data"]`` first, then ``input``;
        a missing parameter is sent as ``null``.
        """
        if not function_params or not isinstance(function_params, list):
            return ""

        data = test_input.get("data") if isinstance(test_input, dict) else None
        lines = []
        for param in function_params:
            name = param.get("name")
            value = data.get(name) if isinstance(data, dict) else None
            if value is None and isinstance(test_input, dict):
                value = test_input.get(name)
            lines.append(json.dumps(value, separators=(",", ":"), ensure_ascii=False))
        return "\n".join(lines)
