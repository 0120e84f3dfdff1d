"""
Element table.

Each ElementKind maps to one static record holding its default composition
and base display color. Particles consult the table only at creation time;
later composition changes never retag the element.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple


Color = Tuple[float, float, float, float]


class ElementKind(Enum):
    """Supported particle species"""
    HYDROGEN = "hydrogen"
    HELIUM = "helium"
    LITHIUM = "lithium"
    CARBON = "carbon"
    OXYGEN = "oxygen"
    IRON = "iron"
    URANIUM = "uranium"
    CUSTOM = "custom"


@dataclass(frozen=True)
class ElementRecord:
    """Default composition and color for an element"""
    protons: int
    neutrons: int
    electrons: int
    color: Color  # RGBA, floats in [0, 1]
    symbol: str


ELEMENT_TABLE: Dict[ElementKind, ElementRecord] = {
    ElementKind.HYDROGEN: ElementRecord(1, 0, 1, (1.0, 1.0, 1.0, 1.0), "H"),
    ElementKind.HELIUM: ElementRecord(2, 2, 2, (1.0, 1.0, 0.6, 1.0), "He"),
    ElementKind.LITHIUM: ElementRecord(3, 4, 3, (0.8, 0.5, 1.0, 1.0), "Li"),
    ElementKind.CARBON: ElementRecord(6, 6, 6, (0.35, 0.35, 0.35, 1.0), "C"),
    ElementKind.OXYGEN: ElementRecord(8, 8, 8, (1.0, 0.2, 0.2, 1.0), "O"),
    ElementKind.IRON: ElementRecord(26, 30, 26, (0.7, 0.45, 0.2, 1.0), "Fe"),
    ElementKind.URANIUM: ElementRecord(92, 146, 92, (0.2, 1.0, 0.3, 1.0), "U"),
    # Custom particles supply composition and color explicitly
    ElementKind.CUSTOM: ElementRecord(0, 0, 0, (1.0, 0.0, 1.0, 1.0), "?"),
}

# Elements drawn by random generation, in config probability order
SPAWNABLE_ELEMENTS = (
    ElementKind.HYDROGEN,
    ElementKind.HELIUM,
    ElementKind.CARBON,
    ElementKind.OXYGEN,
    ElementKind.IRON,
)


def element_record(kind: ElementKind) -> ElementRecord:
    """Look up the static record for an element"""
    return ELEMENT_TABLE[kind]


def parse_element(value) -> ElementKind:
    """
    Resolve an element from an ElementKind, enum value or symbol.

    Accepts 'hydrogen', 'HYDROGEN', 'H' and ElementKind.HYDROGEN alike.

    Raises:
        ValueError: If the name matches no element
    """
    if isinstance(value, ElementKind):
        return value

    text = str(value).strip()
    for kind, record in ELEMENT_TABLE.items():
        if text.lower() == kind.value or text == record.symbol:
            return kind

    raise ValueError(f"Unknown element: {value!r}")
