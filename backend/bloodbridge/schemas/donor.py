from __future__ import annotations

from typing import Any, Dict

from ..models.matching import DonorCandidate


def candidate_from_document(donor: Dict[str, Any]) -> DonorCandidate:
    location = donor.get("location") or {}
    longitude, latitude = location.get("coordinates") or (0.0, 0.0)
    return DonorCandidate(
        id=str(donor.get("_id")),
        name=donor.get("name") or "",
        blood_group=donor.get("bloodGroup"),
        coordinates=(float(longitude), float(latitude)),
        last_donation_date=donor.get("lastDonationDate"),
        date_of_birth=donor.get("dateOfBirth"),
        phone=donor.get("phone"),
        email=donor.get("email"),
    )
