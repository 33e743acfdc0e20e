"""
Blood group compatibility.

Which donor blood groups may give red cells to which recipient groups. The
relation is directional: O- gives to everyone, AB+ receives from everyone.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import FrozenSet, Mapping

from ..models.matching import BloodGroup

_O_NEG = BloodGroup.O_NEGATIVE
_O_POS = BloodGroup.O_POSITIVE
_A_NEG = BloodGroup.A_NEGATIVE
_A_POS = BloodGroup.A_POSITIVE
_B_NEG = BloodGroup.B_NEGATIVE
_B_POS = BloodGroup.B_POSITIVE
_AB_NEG = BloodGroup.AB_NEGATIVE
_AB_POS = BloodGroup.AB_POSITIVE

# donor -> recipients it may serve
COMPATIBILITY: Mapping[BloodGroup, FrozenSet[BloodGroup]] = MappingProxyType(
    {
        _O_NEG: frozenset({_O_NEG, _O_POS, _A_NEG, _A_POS, _B_NEG, _B_POS, _AB_NEG, _AB_POS}),
        _O_POS: frozenset({_O_POS, _A_POS, _B_POS, _AB_POS}),
        _A_NEG: frozenset({_A_NEG, _A_POS, _AB_NEG, _AB_POS}),
        _A_POS: frozenset({_A_POS, _AB_POS}),
        _B_NEG: frozenset({_B_NEG, _B_POS, _AB_NEG, _AB_POS}),
        _B_POS: frozenset({_B_POS, _AB_POS}),
        _AB_NEG: frozenset({_AB_NEG, _AB_POS}),
        _AB_POS: frozenset({_AB_POS}),
    }
)

# recipient -> donors it may accept, derived once from the table above
_DONORS_FOR: Mapping[BloodGroup, FrozenSet[BloodGroup]] = MappingProxyType(
    {
        recipient: frozenset(donor for donor, recipients in COMPATIBILITY.items() if recipient in recipients)
        for recipient in BloodGroup
    }
)


def is_compatible(donor_group: BloodGroup, recipient_group: BloodGroup) -> bool:
    """Return True if a donor of ``donor_group`` may give to ``recipient_group``."""
    return BloodGroup(recipient_group) in COMPATIBILITY[BloodGroup(donor_group)]


def compatible_donor_groups(recipient_group: BloodGroup) -> FrozenSet[BloodGroup]:
    """Blood groups that can donate to ``recipient_group``."""
    return _DONORS_FOR[BloodGroup(recipient_group)]


def compatible_recipient_groups(donor_group: BloodGroup) -> FrozenSet[BloodGroup]:
    return COMPATIBILITY[BloodGroup(donor_group)]
