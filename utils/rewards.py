"""Static reward catalog with pure redemption checks."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional, Tuple

REWARD_TYPES: tuple[str, ...] = ("discount", "voucher", "badge", "certificate")


@dataclass(frozen=True)
class Reward:
    id: str
    title: str
    description: str
    type: str
    value: str
    points_cost: int
    expiry_date: Optional[date] = None
    partner_logo: Optional[str] = None
    terms_and_conditions: Tuple[str, ...] = field(default_factory=tuple)

    def is_expired(self, now: datetime | None = None) -> bool:
        if not self.expiry_date:
            return False
        # Expiry dates mean midnight UTC at the start of that day.
        today = (now or datetime.utcnow()).date()
        return self.expiry_date <= today

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "type": self.type,
            "value": self.value,
            "points_cost": self.points_cost,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "partner_logo": self.partner_logo,
            "terms_and_conditions": list(self.terms_and_conditions),
        }


REWARDS: Tuple[Reward, ...] = (
    Reward(
        "coffee_discount",
        "20% Off Coffee",
        "Get 20% discount at Cafe Coffee Day",
        "discount",
        "20%",
        100,
        date(2027, 12, 31),
        "https://images.pexels.com/photos/302899/pexels-photo-302899.jpeg",
        (
            "Valid at participating outlets only",
            "Cannot be combined with other offers",
            "Valid for 30 days from redemption",
        ),
    ),
    Reward(
        "movie_ticket",
        "Free Movie Ticket",
        "Complimentary movie ticket at PVR Cinemas",
        "voucher",
        "₹300",
        500,
        date(2027, 12, 31),
        "https://images.pexels.com/photos/7991579/pexels-photo-7991579.jpeg",
        (
            "Valid for 2D movies only",
            "Subject to seat availability",
            "Valid for 60 days from redemption",
        ),
    ),
    Reward(
        "eco_warrior_badge",
        "Eco Warrior Digital Badge",
        "Special recognition badge for your profile",
        "badge",
        "Digital Badge",
        200,
        None,
        None,
        (
            "Displayed on your public profile",
            "Permanent achievement",
            "Shows your environmental commitment",
        ),
    ),
    Reward(
        "city_champion_certificate",
        "City Champion Certificate",
        "Official certificate from Municipal Corporation",
        "certificate",
        "Official Certificate",
        1000,
        None,
        None,
        (
            "Digitally signed certificate",
            "Can be used for resume/portfolio",
            "Official recognition from authorities",
        ),
    ),
    Reward(
        "restaurant_voucher",
        "₹500 Restaurant Voucher",
        "Dining voucher at partner restaurants",
        "voucher",
        "₹500",
        800,
        date(2027, 12, 31),
        "https://images.pexels.com/photos/262978/pexels-photo-262978.jpeg",
        (
            "Valid at 50+ partner restaurants",
            "Minimum order value ₹1000",
            "Valid for 90 days from redemption",
        ),
    ),
)

REWARDS_BY_ID: Dict[str, Reward] = {r.id: r for r in REWARDS}


def get_available_rewards(user_points: int, catalog: Tuple[Reward, ...] = REWARDS) -> List[Reward]:
    # Expiry is only enforced at redemption time.
    return [reward for reward in catalog if reward.points_cost <= user_points]


def redeem_reward(
    reward_id: str,
    user_points: int,
    now: datetime | None = None,
    catalog: Dict[str, Reward] | None = None,
) -> Dict:
    """Check a redemption against the balance without persisting anything."""
    reward = (catalog if catalog is not None else REWARDS_BY_ID).get(reward_id)
    if not reward:
        return {"success": False, "message": "Reward not found"}
    if user_points < reward.points_cost:
        return {"success": False, "message": "Insufficient points"}
    if reward.is_expired(now):
        return {"success": False, "message": "Reward has expired"}
    return {
        "success": True,
        "message": f"Successfully redeemed {reward.title}!",
        "new_points": user_points - reward.points_cost,
        "reward": reward,
    }
