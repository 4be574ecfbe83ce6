"""
Case team ownership for Irtiqa.

Provides:
- Invite, approve, reject and remove collaborators (ledger)
- Referral of case ownership (referral)
"""

from irtiqa.team.ledger import CaseOwnershipLedger
from irtiqa.team.referral import ReferralCoordinator

__all__ = [
    "CaseOwnershipLedger",
    "ReferralCoordinator",
]
