"""Build-time options of the test framework, as a typed configuration object."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Mapping

_VALID_WIDTHS = frozenset({16, 32, 64})

_FLAG_DEFINES = {
    "UNITY_INCLUDE_64": "include_64",
    "UNITY_EXCLUDE_FLOAT": "exclude_float",
    "UNITY_INCLUDE_DOUBLE": "include_double",
    "UNITY_EXCLUDE_FLOAT_PRINT": "exclude_float_print",
    "UNITY_INCLUDE_PRINT_FORMATTED": "include_print_formatted",
    "UNITY_INCLUDE_EXEC_TIME": "include_exec_time",
    "UNITY_EXCLUDE_STDLIB_MALLOC": "exclude_stdlib_malloc",
}

_INT_DEFINES = {
    "UNITY_INT_WIDTH": "int_width",
    "UNITY_LONG_WIDTH": "long_width",
    "UNITY_POINTER_WIDTH": "pointer_width",
    "UNITY_INTERNAL_HEAP_SIZE_BYTES": "internal_heap_size_bytes",
}

_FLOAT_DEFINES = {
    "UNITY_FLOAT_PRECISION": "float_precision",
    "UNITY_DOUBLE_PRECISION": "double_precision",
}

_TYPE_DEFINES = {
    "UNITY_FLOAT_TYPE": "float_type",
    "UNITY_DOUBLE_TYPE": "double_type",
}


def _parse_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"expected an integer, got {value!r}")
    if isinstance(value, int):
        return value
    text = str(value).strip().rstrip("uUlL")
    return int(text, 0)


def _parse_float(value: Any) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    text = str(value).strip().rstrip("fFlL")
    return float(text)


@dataclass(frozen=True)
class Config:
    """Integer widths, floating point options and heap settings."""

    int_width: int = 32
    long_width: int = 32
    pointer_width: int = 32
    include_64: bool = False
    exclude_float: bool = False
    include_double: bool = False
    float_precision: float = 0.00001
    double_precision: float = 1e-12
    float_type: str = "float"
    double_type: str = "double"
    exclude_float_print: bool = False
    include_print_formatted: bool = False
    include_exec_time: bool = False
    exclude_stdlib_malloc: bool = False
    internal_heap_size_bytes: int = 256

    def __post_init__(self) -> None:
        for name in ("int_width", "long_width", "pointer_width"):
            width = getattr(self, name)
            if width not in _VALID_WIDTHS:
                raise ValueError(f"invalid {name} {width!r}; expected 16, 32 or 64")
        if self.internal_heap_size_bytes <= 0:
            raise ValueError("internal heap size must be positive")
        if self.float_precision <= 0 or self.double_precision <= 0:
            raise ValueError("precision must be positive")

    @classmethod
    def from_defines(cls, defines: Mapping[str, Any]) -> "Config":
        """Build a configuration from preprocessor-style defines.

        A flag define counts as set whatever its value; valued defines accept
        Python numbers or C literals such as ``"64"``, ``"0x100"`` or ``"0.001f"``.
        Defines that are not configuration options are ignored.
        """
        values: dict[str, Any] = {}
        for name, value in defines.items():
            if name in _FLAG_DEFINES:
                values[_FLAG_DEFINES[name]] = True
            elif name in _INT_DEFINES:
                values[_INT_DEFINES[name]] = _parse_int(value)
            elif name in _FLOAT_DEFINES:
                values[_FLOAT_DEFINES[name]] = _parse_float(value)
            elif name in _TYPE_DEFINES:
                values[_TYPE_DEFINES[name]] = str(value).strip()
        if "UNITY_EXCLUDE_DOUBLE" in defines:
            values["include_double"] = False
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in values.items() if k in known})

    def supports_64(self) -> bool:
        """Whether 64-bit integer support is enabled or implied by a width."""
        return self.include_64 or any(
            width > 32 for width in (self.int_width, self.long_width, self.pointer_width)
        )

    def malloc_alignment(self) -> int:
        """Alignment in bytes used by the guarded allocator."""
        return self.pointer_width // 8