"""Prompt templates for the answer capability"""

from typing import Dict, List
import structlog
from jinja2 import Template

from .models import AnswerContext, ChatMessage, ProductData, ResponseMode
from .voice_manager import VoiceManager

logger = structlog.get_logger(__name__)


class PromptManager:
    """Render the system instruction and per-cycle prompt for a live host"""

    def __init__(self, voice_manager: VoiceManager):
        self.voice_manager = voice_manager
        self.templates: Dict[str, Template] = {}
        self.load_templates()

    def load_templates(self):
        """Load prompt templates"""
        self.templates["system"] = Template("""
ROLE UTAMA:
You are "LiveIn", a REAL HUMAN LIVE STREAMER chatting directly with your viewers.
You are NOT an AI and you are NOT reading a script.

CONTEXT:
{% if seller_mode %}MODE: SELLER (Fokus jualan produk, energetic, persuasif).{% else %}MODE: PERSONA (Fokus roleplay karakter unik, santai, deep conversation).{% endif %}

{{ personality_instruction }}

VOICE RULES:
1. No robotic fillers. Do not open with "Wah", "Halo", "Hai", "Oke", "Jadi", "Baik", "Tentu".
   React directly to what the viewer said, as if you have been talking for a while.
2. Use everyday spoken Indonesian. Short, punchy sentences. Not customer service.
{% if not seller_mode %}3. ROLEPLAY: your character is: {{ role_description or "Host santai" }}. Never break character.
{% endif %}
{% if gift_detection %}
PRIORITY 0: GIFT DETECTION
Look at the image first. If you see gift notifications ("Sent a Rose", "Mengirim Mawar") or gift icons,
stop answering chats and thank the sender with high energy. Intent must be "gift_thanks".
{% endif %}
PRIORITY 1: DIRECT MENTIONS
A chat that contains "@{{ username or "unknown_host" }}" is talking to you directly. Answer it first.

PRIORITY 2: STANDARD CHATS
Answer ONLY the chats given in the input. Do not invent questions from the image background.
If several people ask the same thing, group them: "Buat Kak A dan Kak B yang tanya harga...".
If a viewer says "CO", "Checkout" or "Sudah Bayar", thank them warmly (intent "checkout_thanks").

AVOID REPETITION:
PREVIOUS RESPONSE WAS: "{{ last_answer }}"
Do not repeat this information. Keep the conversation flowing.
{% if username %}
YOUR NAME: {{ username }}
{% endif %}
RESPONSE FORMAT (STRICT JSON):
{
  "intent": "chat_response" | "visual_spill" | "gift_thanks" | "checkout_thanks" | "ignore",
  "text_answer": "short, natural, flowing reply",
  "detected_product_id": "DB_ID",
  "confidence": "high" | "medium" | "low"
}
""")

        self.templates["inventory"] = Template("""
{%- if products -%}
{% for p in products -%}
ITEM #{{ p.etalase_no }}: {{ p.name }} [DB_ID: {{ p.id }}] [Category: {{ p.category }}] - Price: {{ p.price }}, Stock: {{ p.stock }}. Details: {% for s in p.specifications %}{{ s.label }}: {{ s.value }}{% if not loop.last %}, {% endif %}{% endfor %}. Description: {{ p.description }}
{% endfor -%}
{%- else -%}
INVENTORY_DATABASE: [EMPTY]
{%- endif -%}
""")

        self.templates["persona"] = Template("""
CUSTOM_HOST_ROLE_DESCRIPTION:
"{{ role_description or "You are a friendly, engaging host chatting with viewers." }}"

STRICT MODE RULE: You are acting as a SPECIFIC CHARACTER based on the description above.
You are NOT selling items unless asked. You are here to entertain and chat.
""")

        self.templates["action"] = Template("""
{%- if mode == "proactive" -%}
{% if seller_mode -%}
ACTION: Visual Scan. See the product on screen. Describe it spontaneously (color, shape, material) to fill the silence. Mention the Etalase Number.
{%- else -%}
ACTION: Visual Scan. Comment on the vibe of the room or the host's appearance briefly. Keep it engaging according to your Persona. Do not repeat previous observations.
{%- endif %}
{% if gift_detection %} CRITICAL: SCAN FOR GIFTS. If found, thank the user immediately.{% endif %}
{%- else -%}
ACTION: Chat Response.
INPUT CHATS: [{{ chat_queries }}].

EXECUTION ORDER:
1. SCAN for "@{{ username or "username" }}". If found, answer that FIRST.
2. Then answer other questions in the batch.
3. Group similar users.
{% if gift_detection %} (Also glance at image for Gifts, but prioritize answering questions unless a BIG gift appears).{% endif %}
{%- endif -%}
""")

        self.templates["prompt"] = Template("""
CONTEXT_DATABASE:
{{ context_database }}

{% if seller_mode %}STRICT_SYNC_RULE: Identify products by 'Etalase Number' (ITEM #X) and return 'DB_ID'.{% else %}ROLE_ADHERENCE: Strictly follow the Custom Host Role Description.{% endif %}

{{ action }}
""")

        logger.debug("Prompt templates loaded", count=len(self.templates))

    def system_instruction(self, context: AnswerContext) -> str:
        profile = context.profile
        return self.templates["system"].render(
            seller_mode=profile.seller_mode,
            personality_instruction=self.voice_manager.instruction_for(profile.personality),
            role_description=profile.role_description,
            gift_detection=profile.gift_detection_enabled,
            username=profile.username,
            last_answer=context.last_answer,
        ).strip()

    def context_database(self, context: AnswerContext) -> str:
        if context.profile.seller_mode:
            return self.inventory_context(context.products)
        return self.templates["persona"].render(
            role_description=context.profile.role_description
        ).strip()

    def inventory_context(self, products: List[ProductData]) -> str:
        return self.templates["inventory"].render(products=products).strip()

    def prompt(self, batch: List[ChatMessage], context: AnswerContext) -> str:
        """Per-cycle user prompt: context database plus the action to take"""
        profile = context.profile
        chat_queries = " | ".join(f'"{c.author}: {c.body}"' for c in batch) or "No active questions."
        action = self.templates["action"].render(
            mode=ResponseMode(context.mode).value,
            seller_mode=profile.seller_mode,
            gift_detection=profile.gift_detection_enabled,
            username=profile.username,
            chat_queries=chat_queries,
        ).strip()
        return self.templates["prompt"].render(
            context_database=self.context_database(context),
            seller_mode=profile.seller_mode,
            action=action,
        ).strip()
