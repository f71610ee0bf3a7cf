"""Profiling mode: which pixel populations and descriptor families to compute.

A mode is parsed once per run from two short flag strings and is immutable
afterwards. The population string follows the command-line letters
(``c f b m p x e``); the family string selects what is computed on the
``c``/``f``/``b`` pixel populations (``i o t z``).
"""

from dataclasses import dataclass
from enum import Enum

from pyama_morph.errors import ConfigError


class Population(str, Enum):
    COMPLETE = "c"
    FOREGROUND = "f"
    BACKGROUND = "b"
    MASK = "m"
    POLYGON = "p"
    BOUNDING_BOX = "x"
    EMBEDDING = "e"


class Family(str, Enum):
    INTENSITY = "i"
    MOMENTS = "o"
    TEXTURE = "t"
    ZERNIKE = "z"


# Column prefixes for the pixel populations
PIXEL_POPULATIONS: dict[Population, str] = {
    Population.COMPLETE: "complete",
    Population.FOREGROUND: "foreground",
    Population.BACKGROUND: "background",
}

# Output ordering is fixed, independent of the order flags were given in.
POPULATION_ORDER: tuple[Population, ...] = (
    Population.BOUNDING_BOX,
    Population.POLYGON,
    Population.COMPLETE,
    Population.FOREGROUND,
    Population.BACKGROUND,
    Population.MASK,
    Population.EMBEDDING,
)
FAMILY_ORDER: tuple[Family, ...] = (
    Family.INTENSITY,
    Family.MOMENTS,
    Family.TEXTURE,
    Family.ZERNIKE,
)

DEFAULT_POPULATIONS = "cm"
DEFAULT_FAMILIES = "iotz"


def _parse_flags(value: str, enum_type: type[Enum], label: str) -> frozenset:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"Mode {label} string must not be empty")
    valid = "".join(member.value for member in enum_type)
    flags = set()
    for char in value.strip().lower():
        try:
            flags.add(enum_type(char))
        except ValueError:
            raise ConfigError(
                f"Invalid {label} flag '{char}' in '{value}'. "
                f"Must only contain one or more of: {', '.join(valid)}."
            ) from None
    return frozenset(flags)


@dataclass(frozen=True)
class Mode:
    populations: frozenset[Population]
    families: frozenset[Family]

    @classmethod
    def parse(
        cls,
        populations: str = DEFAULT_POPULATIONS,
        families: str = DEFAULT_FAMILIES,
    ) -> "Mode":
        """Parse flag strings, raising ConfigError on unknown characters."""
        return cls(
            populations=_parse_flags(populations, Population, "population"),
            families=_parse_flags(families, Family, "family"),
        )

    def has(self, population: Population) -> bool:
        return population in self.populations

    def ordered_populations(self) -> list[Population]:
        return [p for p in POPULATION_ORDER if p in self.populations]

    def ordered_families(self) -> list[Family]:
        return [f for f in FAMILY_ORDER if f in self.families]

    def pixel_populations(self) -> list[Population]:
        return [p for p in self.ordered_populations() if p in PIXEL_POPULATIONS]

    @property
    def code(self) -> str:
        pops = "".join(p.value for p in self.ordered_populations())
        fams = "".join(f.value for f in self.ordered_families())
        return f"{pops}:{fams}"

    def __str__(self) -> str:
        return self.code


__all__ = [
    "Population",
    "Family",
    "Mode",
    "PIXEL_POPULATIONS",
    "DEFAULT_POPULATIONS",
    "DEFAULT_FAMILIES",
]
