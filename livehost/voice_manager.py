"""Voice and persona profiles for answer prompts and speech synthesis"""

from typing import Dict, List

from .models import HostGender, HostPersonality

PERSONALITY_PROFILES: Dict[HostPersonality, Dict[str, str]] = {
    HostPersonality.ENTHUSIAST: {
        "name": "Enthusiastic Seller",
        "description": "High energy, persuasive, fast-paced.",
        "instruction": (
            "PERSONALITY: You are a star live seller. TONE: High energy, very hyped, and fast-paced. "
            "STYLE: Use energetic Indonesian slang (Kakak, Bunda, Gaskeun abis!, Mantul!). "
            "Mention names with excitement. End with persuasive calls to action when appropriate."
        ),
    },
    HostPersonality.EXPERT: {
        "name": "Informative Expert",
        "description": "Technical, detailed, professional.",
        "instruction": (
            "PERSONALITY: You are a product specialist. TONE: Professional, calm, and authoritative. "
            "STYLE: Clear, informative, and detailed Indonesian. Focus on quality, materials, and "
            "comparisons. Address users respectfully by name."
        ),
    },
    HostPersonality.COMPANION: {
        "name": "Friendly Companion",
        "description": "Casual, warm, relatable.",
        "instruction": (
            "PERSONALITY: You are a shopping bestie. TONE: Warm, empathetic, and gentle. "
            "STYLE: Casual and friendly Indonesian (Wah Kak [Name], ini sih favorit aku juga!). "
            "Talk like a friend sharing a personal secret or recommendation."
        ),
    },
    HostPersonality.EXPRESSIVE: {
        "name": "Expressive Host",
        "description": "Dynamic, dramatic, storytelling.",
        "instruction": (
            "PERSONALITY: You are a dramatic and expressive storyteller. TONE: High dynamic range, "
            "emotional, and varied. STYLE: Use emphasis, dramatic pauses, and rich intonation. "
            "Speak like you are telling an engaging story."
        ),
    },
}

# Spoken-style hints prepended to the text sent for synthesis
TONE_WRAPPERS: Dict[HostPersonality, str] = {
    HostPersonality.ENTHUSIAST: "[Spoken naturally like a real human, conversational, fast-paced, slightly imperfect flow, not robotic]",
    HostPersonality.EXPERT: "[Spoken confidently, natural flow, like a shopkeeper explaining, not reading]",
    HostPersonality.COMPANION: "[Spoken intimately, soft, human-like, conversational, relaxed]",
}


class VoiceManager:
    """Resolve the prebuilt voice and speaking style for a host profile"""

    def __init__(self):
        self.voices: Dict[HostGender, str] = {
            HostGender.FEMALE: "Kore",    # stable, clear
            HostGender.MALE: "Fenrir",    # deep, stable
        }

    def voice_for(self, gender: HostGender) -> str:
        return self.voices.get(HostGender(gender), self.voices[HostGender.FEMALE])

    def style_for(self, personality: HostPersonality) -> str:
        return TONE_WRAPPERS.get(HostPersonality(personality), TONE_WRAPPERS[HostPersonality.ENTHUSIAST])

    def styled_text(self, text: str, personality: HostPersonality) -> str:
        return f"{self.style_for(personality)} {text}"

    def instruction_for(self, personality: HostPersonality) -> str:
        return PERSONALITY_PROFILES[HostPersonality(personality)]["instruction"]

    def list_profiles(self) -> List[Dict[str, str]]:
        return [
            {"personality": p.value, "name": info["name"], "description": info["description"]}
            for p, info in PERSONALITY_PROFILES.items()
        ]
