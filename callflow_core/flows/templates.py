"""
Flow Templates.

Built-in starting points for new flows.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .base import NodeType, NotFoundError
from .graph import FlowGraph, FlowMetadata, FlowNode, FlowSettings, SttSettings
from .nodes import EndConfig, ListenConfig, StartConfig


def basic_greeting(
    company_name: str,
    greeting_message: Optional[str] = None,
    system_prompt: Optional[str] = None,
) -> FlowGraph:
    """
    Greeting flow: greet the caller, listen to the request, say goodbye.

    Args:
        company_name: Company the bot answers for
        greeting_message: Overrides the default greeting
        system_prompt: Overrides the default system prompt
    """
    settings = FlowSettings(
        system_prompt=system_prompt or (
            f"Du bist ein freundlicher Telefonassistent für {company_name}. "
            "Antworte höflich und professionell auf Deutsch."
        ),
    )
    settings.error_handling.fallback_message = (
        "Es tut mir leid, es ist ein technischer Fehler aufgetreten. "
        "Bitte versuchen Sie es später erneut."
    )

    return FlowGraph.build(
        nodes=[
            FlowNode(
                id="start_001",
                type=NodeType.START,
                label="Start",
                position={"x": 100, "y": 100},
                config=StartConfig(
                    greeting_message=greeting_message or (
                        f"Guten Tag! Vielen Dank für Ihren Anruf bei {company_name}. "
                        "Wie kann ich Ihnen heute helfen?"
                    ),
                ),
            ),
            FlowNode(
                id="listen_001",
                type=NodeType.LISTEN,
                label="Anfrage anhören",
                position={"x": 300, "y": 100},
                config=ListenConfig(
                    timeout=10,
                    retry_message=(
                        "Entschuldigung, ich habe Sie nicht verstanden. "
                        "Könnten Sie das bitte wiederholen?"
                    ),
                    stt=SttSettings().to_dict(),
                ),
            ),
            FlowNode(
                id="end_001",
                type=NodeType.END,
                label="Ende",
                position={"x": 500, "y": 100},
                config=EndConfig(message="Vielen Dank für Ihren Anruf. Auf Wiederhören!"),
            ),
        ],
        connections=[
            ("start_001", "listen_001", "next"),
            ("listen_001", "end_001", "success"),
            ("listen_001", "end_001", "timeout"),
            ("listen_001", "end_001", "noInput"),
        ],
        settings=settings,
        metadata=FlowMetadata(
            name=f"{company_name} Begrüßungsflow",
            description="Einfacher Begrüßungsflow für Kundenanrufe",
            tags=["greeting", "basic"],
        ),
    )


@dataclass(frozen=True)
class FlowTemplate:
    """A named template builder."""

    id: str
    name: str
    description: str
    builder: Callable[..., FlowGraph]

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "description": self.description}


TEMPLATES: Dict[str, FlowTemplate] = {
    "basic_greeting": FlowTemplate(
        id="basic_greeting",
        name="Basic Greeting",
        description="Greets the caller, listens to the request and ends the call",
        builder=basic_greeting,
    ),
}


def list_templates() -> List[FlowTemplate]:
    return list(TEMPLATES.values())


def build_template(template_id: str, **options: Any) -> FlowGraph:
    """
    Build the graph of a template.

    Raises:
        NotFoundError: unknown template id
    """
    template = TEMPLATES.get(template_id)
    if template is None:
        raise NotFoundError("FlowTemplate", template_id)
    return template.builder(**options)


__all__ = [
    "basic_greeting",
    "FlowTemplate",
    "TEMPLATES",
    "list_templates",
    "build_template",
]
