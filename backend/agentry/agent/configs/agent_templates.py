"""
Agent Templates

Pre-built specialist configurations used by the team coordinator when it
spins up an ephemeral agent. A template fixes the system message and
sampling settings; provider and model default to the coordinator's own
unless the template pins them.
"""

import json
import logging
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class AgentTemplate:
    """Template for creating agents with pre-configured settings"""
    name: str
    description: str
    system_message: str
    category: str = "general"
    provider: Optional[str] = None
    model: Optional[str] = None
    temperature: float = 0.5
    max_tokens: Optional[int] = None
    tools: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    version: str = "1.0.0"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentTemplate":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


class AgentTemplateManager:
    """Manager for agent templates"""

    def __init__(self, templates_path: Optional[str] = None, include_builtin: bool = True):
        self.templates: Dict[str, AgentTemplate] = {}
        self.templates_path = Path(templates_path) if templates_path else None
        if include_builtin:
            self._load_builtin_templates()
        if self.templates_path and self.templates_path.exists():
            self.load_templates(str(self.templates_path))

    def register_template(self, template: AgentTemplate):
        """Register a new agent template, replacing any template with the same name"""
        if not template.name:
            raise ValueError("Template must have a name")
        if template.name in self.templates:
            logger.warning(f"Overriding existing agent template '{template.name}'")
        self.templates[template.name] = template

    def unregister_template(self, name: str) -> bool:
        return self.templates.pop(name, None) is not None

    def get_template(self, name: str) -> Optional[AgentTemplate]:
        """Get a template by name"""
        return self.templates.get(name)

    def has_template(self, name: str) -> bool:
        return name in self.templates

    def names(self) -> List[str]:
        return list(self.templates.keys())

    def list_templates(self, category: Optional[str] = None) -> List[AgentTemplate]:
        """List available templates, optionally filtered by category"""
        templates = list(self.templates.values())
        if category:
            templates = [t for t in templates if t.category == category]
        return templates

    def find_templates(self, category: Optional[str] = None, tags: Optional[List[str]] = None,
                       provider: Optional[str] = None) -> List[AgentTemplate]:
        """Templates matching every given criterion; ``tags`` matches any overlap"""
        result = self.list_templates(category)
        if tags:
            wanted = set(tags)
            result = [t for t in result if wanted.intersection(t.tags)]
        if provider:
            result = [t for t in result if t.provider in (None, provider)]
        return result

    def apply_overrides(self, name: str, overrides: Optional[Dict[str, Any]] = None) -> Optional[AgentTemplate]:
        """Copy of a template with overrides applied; unknown keys are ignored with a warning"""
        template = self.get_template(name)
        if not template:
            return None
        if not overrides:
            return replace(template)

        known = {f.name for f in fields(AgentTemplate)}
        applicable = {}
        for key, value in overrides.items():
            if key in known and key != "name":
                applicable[key] = value
            else:
                logger.warning(f"Ignoring unknown override '{key}' for template '{name}'")
        return replace(template, **applicable)

    def describe(self) -> str:
        """One line per template, used in the delegation tool description"""
        return "\n".join(f"- {t.name}: {t.description}" for t in self.templates.values())

    def get_stats(self) -> Dict[str, Any]:
        categories: Dict[str, int] = {}
        for template in self.templates.values():
            categories[template.category] = categories.get(template.category, 0) + 1
        return {"total_templates": len(self.templates), "categories": categories}

    def save_templates(self, path: Optional[str] = None):
        """Save templates to a JSON file"""
        save_path = Path(path) if path else self.templates_path
        if not save_path:
            raise ValueError("No save path specified")

        save_path.parent.mkdir(parents=True, exist_ok=True)
        with open(save_path, 'w') as f:
            json.dump({name: t.to_dict() for name, t in self.templates.items()}, f, indent=2)

    def load_templates(self, path: str):
        """Load templates from a JSON file"""
        with open(path, 'r') as f:
            templates_data = json.load(f)

        for name, template_data in templates_data.items():
            template_data.setdefault("name", name)
            self.register_template(AgentTemplate.from_dict(template_data))

    def _load_builtin_templates(self):
        """Load built-in agent templates"""
        for template in builtin_templates():
            self.templates[template.name] = template


def builtin_templates() -> List[AgentTemplate]:
    return [
        AgentTemplate(
            name="general",
            description="General-purpose agent without a specialization. Use when no specialist "
                        "template fits the task.",
            system_message=(
                "You are a capable general-purpose assistant. Work out what the request needs, "
                "apply the relevant knowledge, and answer clearly and accurately. Ask for "
                "clarification only when the task cannot be completed without it."
            ),
            category="general",
            temperature=0.5,
            tags=["general", "default"],
        ),
        AgentTemplate(
            name="summarizer",
            description="Summarization specialist. Use for summarizing documents, extracting key "
                        "points, executive summaries and meeting notes.",
            system_message=(
                "You are a summarization specialist. Extract the main ideas, key data points, "
                "conclusions and action items from the material you are given. Keep summaries "
                "concise, faithful to the source and structured for quick reading."
            ),
            category="analysis",
            temperature=0.3,
            tags=["analysis", "summarization", "extraction"],
        ),
        AgentTemplate(
            name="ethical_reviewer",
            description="Ethics and compliance reviewer. Use for bias detection, privacy "
                        "assessment, content moderation and risk review.",
            system_message=(
                "You are an ethical review specialist. Assess the material for ethical risk, "
                "privacy and data-protection concerns, bias and fairness issues, and regulatory "
                "compliance. Give balanced findings with concrete recommendations."
            ),
            category="analysis",
            temperature=0.2,
            tags=["ethics", "review", "compliance"],
        ),
        AgentTemplate(
            name="creative_ideator",
            description="Creative ideation specialist. Use for brainstorming, product concepts, "
                        "campaign ideas and unconventional problem solving.",
            system_message=(
                "You are a creative ideation specialist. Generate varied, original ideas, "
                "challenge assumptions and combine concepts across domains, while keeping each "
                "proposal feasible."
            ),
            category="creative",
            temperature=0.8,
            tags=["creativity", "brainstorming", "innovation"],
        ),
        AgentTemplate(
            name="fast_executor",
            description="Fast, accurate executor for quick or urgent tasks and simple, "
                        "well-defined requests.",
            system_message=(
                "You are a fast and precise executor. Deliver the essential result immediately, "
                "keep output short and actionable, and double-check correctness before answering."
            ),
            category="execution",
            temperature=0.1,
            max_tokens=1000,
            tags=["execution", "speed", "accuracy"],
        ),
        AgentTemplate(
            name="domain_researcher",
            description="Research specialist. Use for market, technical or academic research, "
                        "trend analysis and evidence-based reports.",
            system_message=(
                "You are a domain research specialist. Investigate the topic systematically, "
                "weigh the quality of evidence, note gaps and competing views, and synthesize "
                "findings into well-supported conclusions."
            ),
            category="research",
            temperature=0.4,
            tags=["research", "analysis", "domain-expertise"],
        ),
        AgentTemplate(
            name="task_coordinator",
            description="Coordinator that breaks complex work into self-contained sub-tasks and "
                        "delegates them to specialists.",
            system_message=(
                "You are a team coordinator. Handle simple requests yourself. For complex or "
                "multi-part requests, split the work into self-contained tasks, delegate each "
                "with assignTask to the most suitable specialist template, and combine the "
                "results into one coherent answer in the user's language."
            ),
            category="management",
            temperature=0.6,
            tags=["management", "coordination"],
        ),
    ]
