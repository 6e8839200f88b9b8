# prompts.py
import logging
from pathlib import Path
from typing import Union

from models import ChatRequest

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = (
    "ROLE: You are the AI assistant on a personal portfolio website. You answer visitors' "
    "questions about the site owner on their behalf.\n"
    "SCOPE: Use only the knowledge base below. If the answer is not there, say you don't know "
    "and suggest contacting the owner directly.\n"
    "FORMAT: Keep answers short, friendly and in plain text without markdown.\n"
)

LANGUAGE_DIRECTIVES = {
    "en": "Answer in English.",
    "ru": "Отвечай на русском языке.",
}


def load_knowledge_base(path: Union[str, Path]) -> str:
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        logger.warning("Knowledge base %s not found, answering without it", path)
        return ""
    logger.info("Loaded knowledge base from %s (%d chars)", path, len(text))
    return text


def build_prompt(request: ChatRequest, knowledge_base: str = "") -> str:
    sections = [SYSTEM_INSTRUCTION]
    if knowledge_base:
        sections.append(f"KNOWLEDGE BASE:\n{knowledge_base}\n")
    if request.history:
        lines = [
            f"{'User' if msg.role == 'user' else 'Assistant'}: {msg.content}"
            for msg in request.history
        ]
        sections.append("CONVERSATION SO FAR:\n" + "\n".join(lines) + "\n")
    sections.append(f"QUESTION: {request.question}")
    sections.append(LANGUAGE_DIRECTIVES[request.language])
    return "\n".join(sections)
