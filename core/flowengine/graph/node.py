"""
Node Protocol - The typed steps a workflow is built from.

Each node has a kind and a kind-specific config payload:
- trigger: entry point of a run
- llm: chat completion against a configured provider/model
- http: outbound HTTP request
- script: user JavaScript run in the sandbox
- condition: boolean expression that selects the outgoing branch
- image: image generation against a configured provider
- terminator: marks the end of a path

Configs are validated structurally on load. Required fields are checked
when the node executes, so an incomplete node only fails its own branch.
"""

from enum import StrEnum
from typing import Annotated, Any, ClassVar, Literal

from pydantic import BaseModel, Field, model_validator

from flowengine.errors import ConfigurationError


class NodeKind(StrEnum):
    """The seven node kinds."""

    TRIGGER = "trigger"
    LLM = "llm"
    HTTP = "http"
    SCRIPT = "script"
    CONDITION = "condition"
    IMAGE = "image"
    TERMINATOR = "terminator"


class NodeConfig(BaseModel):
    """Base for kind-specific node configuration."""

    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = ()

    model_config = {"extra": "allow"}

    def require(self) -> None:
        """Raise ConfigurationError for the first required field left empty."""
        for name in self.REQUIRED_FIELDS:
            value = getattr(self, name, None)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise ConfigurationError(
                    f"{self.kind} node is missing required field '{name}'", field=name
                )


class TriggerConfig(NodeConfig):
    kind: Literal["trigger"] = "trigger"


class TerminatorConfig(NodeConfig):
    kind: Literal["terminator"] = "terminator"


class LLMConfig(NodeConfig):
    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = ("provider", "model")

    kind: Literal["llm"] = "llm"
    provider: str | None = Field(
        default=None, description="Chat provider: openai, anthropic, gemini or grok"
    )
    model: str | None = Field(default=None, description="Provider model name")
    prompt: str = Field(default="", description="Prompt template, may contain {{variables}}")
    temperature: float = 0.7
    max_tokens: int = 1000


class HTTPConfig(NodeConfig):
    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = ("url",)

    kind: Literal["http"] = "http"
    url: str | None = Field(default=None, description="Request URL, may contain {{variables}}")
    method: str = "GET"
    headers: dict[str, Any] = Field(default_factory=dict)
    body: Any = Field(default=None, description="JSON value or string, resolved before sending")
    timeout: float | None = Field(
        default=None, description="Seconds; falls back to the configured http_timeout"
    )


class ScriptConfig(NodeConfig):
    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = ("code", "language")

    kind: Literal["script"] = "script"
    code: str | None = Field(default=None, description="Function body; `input` is bound")
    language: str | None = "javascript"


class ConditionConfig(NodeConfig):
    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = ("expression",)

    kind: Literal["condition"] = "condition"
    expression: str | None = Field(
        default=None, description="Boolean expression, e.g. input.status === 'success'"
    )


class ImageConfig(NodeConfig):
    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = ("provider", "prompt")

    kind: Literal["image"] = "image"
    provider: str | None = Field(
        default=None,
        description="dalle, grok, stable-diffusion, stable-diffusion-xl or flux",
    )
    prompt: str | None = None
    model: str | None = None
    size: str = "1024x1024"
    n: int = 1
    quality: str | None = None
    background: str | None = None
    guidance_scale: float = 7.5
    num_inference_steps: int = 50


AnyNodeConfig = Annotated[
    TriggerConfig
    | LLMConfig
    | HTTPConfig
    | ScriptConfig
    | ConditionConfig
    | ImageConfig
    | TerminatorConfig,
    Field(discriminator="kind"),
]


class NodeSpec(BaseModel):
    """
    Specification for a single node.

    Example:
        NodeSpec(
            id="summarize",
            kind="llm",
            label="Summarize",
            config={"provider": "openai", "model": "gpt-4o-mini", "prompt": "Summarize:"},
        )
    """

    id: str
    kind: NodeKind
    label: str = ""
    config: AnyNodeConfig

    model_config = {"extra": "allow"}

    @model_validator(mode="before")
    @classmethod
    def _config_follows_kind(cls, data: Any) -> Any:
        # The node's kind selects the config model; configs omit their own kind.
        if isinstance(data, dict):
            kind = data.get("kind")
            config = data.get("config")
            if config is None:
                config = {}
            if isinstance(config, dict) and kind is not None:
                data = {**data, "config": {**config, "kind": str(kind)}}
        return data

    @property
    def display_name(self) -> str:
        return self.label or self.id
