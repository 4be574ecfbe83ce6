"""
Responder guidance and crisis hotline information.
"""

from typing import Any

from irtiqa.safety.risk import RiskLevel


RECOMMENDED_ACTIONS: dict[RiskLevel, dict[str, Any]] = {
    RiskLevel.CRITICAL: {
        "priority": "immediate",
        "actions": [
            "Escalate to an administrator or supervisor immediately",
            "Consider referral to a mental health professional",
            "Share crisis hotline information",
            "Monitor closely",
        ],
        "message": "This case needs immediate attention and may need professional referral.",
    },
    RiskLevel.HIGH: {
        "priority": "urgent",
        "actions": [
            "Prioritise handling",
            "Run a deeper assessment",
            "Consider referral if needed",
            "Monitor progress",
        ],
        "message": "This case needs special attention and careful handling.",
    },
    RiskLevel.MEDIUM: {
        "priority": "normal",
        "actions": [
            "Provide attentive support",
            "Explore further during consultation",
            "Monitor progress",
        ],
        "message": "This case needs support with particular attention.",
    },
    RiskLevel.LOW: {
        "priority": "routine",
        "actions": [
            "Provide standard support",
            "Offer education and encouragement",
        ],
        "message": "This case can be handled with standard support.",
    },
}

NGO_HOTLINES = [
    {
        "name": "Sejiwa",
        "number": "119 ext 8",
        "description": "Mental health counselling service",
        "type": "ngo",
    },
    {
        "name": "Into The Light",
        "number": "021-7884-5555",
        "description": "Suicide prevention",
        "type": "ngo",
    },
]

IMMEDIATE_ACTIONS = [
    "Call the crisis hotline: {number}",
    "Stay calm and find a safe place",
    "Contact family or a close friend",
]

PANIC_ACKNOWLEDGEMENT = (
    "Your request for emergency help has been received. Our team will contact you shortly."
)


def recommended_actions(risk_level: RiskLevel) -> dict[str, Any]:
    """Priority, action list and summary message for a risk tier."""
    template = RECOMMENDED_ACTIONS.get(RiskLevel(risk_level), RECOMMENDED_ACTIONS[RiskLevel.LOW])
    return {
        "priority": template["priority"],
        "actions": list(template["actions"]),
        "message": template["message"],
    }


def primary_hotline(settings: Any) -> dict[str, str]:
    return {"name": settings.crisis_hotline_name, "number": settings.crisis_hotline}


def hotlines(settings: Any) -> list[dict[str, str]]:
    """The configured national hotline first, then the fixed NGO lines."""
    national = {
        **primary_hotline(settings),
        "description": "24/7 mental health counselling and support",
        "type": "national",
    }
    return [national] + [dict(line) for line in NGO_HOTLINES]


def immediate_actions(settings: Any) -> list[str]:
    """Steps shown to a user right after pressing the panic button."""
    number = settings.crisis_hotline
    return [step.format(number=number) for step in IMMEDIATE_ACTIONS]
