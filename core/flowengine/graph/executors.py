"""
Node executors - one strategy per node kind.

Every executor has the same shape:

    async def execute(config, previous_output, ctx) -> output

The output is handed verbatim to the next node as its previous_output.
Failures are raised as WorkflowError subclasses; the graph executor records
them against the node and stops descending from it.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx

from flowengine.config import RuntimeConfig
from flowengine.credentials import CredentialProvider, credential_for_provider
from flowengine.errors import ConfigurationError, ExternalCallError, UnsupportedCapabilityError
from flowengine.graph.code_sandbox import CodeSandbox
from flowengine.graph.node import (
    ConditionConfig,
    HTTPConfig,
    ImageConfig,
    LLMConfig,
    NodeConfig,
    NodeKind,
    ScriptConfig,
)
from flowengine.graph.variables import VariableResolver
from flowengine.llm.image import ImageService
from flowengine.llm.litellm import LiteLLMProvider
from flowengine.llm.provider import LLMProvider
from flowengine.runtime.run_log import LogLevel, RunLog


@dataclass
class RunContext:
    """Collaborators shared by every node of a run."""

    resolver: VariableResolver = field(default_factory=VariableResolver)
    credentials: CredentialProvider = field(default_factory=CredentialProvider)
    run_log: RunLog = field(default_factory=RunLog)
    chat: LLMProvider = field(default_factory=LiteLLMProvider)
    images: ImageService = field(default_factory=ImageService)
    sandbox: CodeSandbox = field(default_factory=CodeSandbox)
    http_client: httpx.AsyncClient | None = None
    config: RuntimeConfig = field(default_factory=RuntimeConfig)

    # Set by the graph executor before each node runs
    node_id: str = "system"

    def log(self, level: LogLevel | str, message: str, data: Any = None) -> None:
        self.run_log.add(self.node_id, level, message, data)


def _is_present(value: Any) -> bool:
    """Truthiness of a previous output: None, '', 0 and False carry nothing."""
    if value is None or value is False:
        return False
    if isinstance(value, (str, int, float)) and not value:
        return False
    return True


def stringify_output(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def compose_prompt(prompt: str | None, previous_output: Any, label: str) -> str:
    """Append the previous node's output to a prompt under the given label."""
    prompt = prompt or ""
    if _is_present(previous_output):
        text = stringify_output(previous_output)
        prompt = f"{prompt}\n\n{label}: {text}" if prompt else text
    return prompt


def _require_credential(ctx: RunContext, provider: str, kind: str) -> str:
    name = credential_for_provider(provider)
    if name is None:
        raise ConfigurationError(f"Unsupported {kind} provider: {provider}", field="provider")
    return ctx.credentials.require(name)


class NodeExecutor(ABC):
    """Strategy for one node kind."""

    kind: NodeKind

    @abstractmethod
    async def execute(self, config: NodeConfig, previous_output: Any, ctx: RunContext) -> Any:
        pass


class TriggerExecutor(NodeExecutor):
    kind = NodeKind.TRIGGER

    async def execute(self, config: NodeConfig, previous_output: Any, ctx: RunContext) -> Any:
        ctx.log(LogLevel.SUCCESS, "Workflow started")
        return {"message": "workflow started"}


class TerminatorExecutor(NodeExecutor):
    kind = NodeKind.TERMINATOR

    async def execute(self, config: NodeConfig, previous_output: Any, ctx: RunContext) -> Any:
        ctx.log(LogLevel.SUCCESS, "Workflow ended")
        return {"message": "workflow ended"}


class LLMExecutor(NodeExecutor):
    kind = NodeKind.LLM

    async def execute(self, config: LLMConfig, previous_output: Any, ctx: RunContext) -> Any:
        config.require()
        ctx.log(LogLevel.INFO, f"Calling LLM: {config.provider} - {config.model}")

        prompt = compose_prompt(config.prompt, previous_output, "Previous output")
        prompt = ctx.resolver.resolve(prompt, {"input": previous_output})
        if not prompt:
            raise ConfigurationError("LLM prompt is empty", field="prompt")

        api_key = _require_credential(ctx, config.provider, "LLM")
        response = await ctx.chat.complete(
            provider=config.provider,
            model=config.model,
            prompt=prompt,
            api_key=api_key,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
        )

        ctx.log(
            LogLevel.SUCCESS,
            "LLM response received",
            {
                "content": response.content,
                "usage": {
                    "input_tokens": response.input_tokens,
                    "output_tokens": response.output_tokens,
                },
            },
        )
        return response.content


class HTTPExecutor(NodeExecutor):
    kind = NodeKind.HTTP

    async def execute(self, config: HTTPConfig, previous_output: Any, ctx: RunContext) -> Any:
        config.require()
        context = {"input": previous_output}
        method = (config.method or "GET").upper()
        url = ctx.resolver.resolve(config.url, context)
        headers = {
            key: ctx.resolver.resolve(value, context) if isinstance(value, str) else str(value)
            for key, value in (config.headers or {}).items()
        }
        ctx.log(LogLevel.INFO, f"HTTP request: {method} {url}")

        request_kwargs: dict[str, Any] = {"headers": headers}
        body = config.body
        if body is not None and body != "":
            resolved = ctx.resolver.resolve(stringify_output(body), context)
            try:
                request_kwargs["json"] = json.loads(resolved)
            except ValueError:
                request_kwargs["json"] = resolved

        timeout = config.timeout if config.timeout is not None else ctx.config.http_timeout
        try:
            if ctx.http_client is not None:
                response = await ctx.http_client.request(
                    method, url, timeout=timeout, **request_kwargs
                )
            else:
                async with httpx.AsyncClient(timeout=timeout) as client:
                    response = await client.request(method, url, **request_kwargs)
        except httpx.HTTPError as e:
            raise ExternalCallError(f"HTTP request failed: {e}") from e

        try:
            result = response.json()
        except ValueError:
            result = response.text

        if not response.is_success:
            message = None
            if isinstance(result, dict):
                error = result.get("error")
                if isinstance(error, dict):
                    message = error.get("message")
                elif isinstance(error, str):
                    message = error
            raise ExternalCallError(
                message or f"HTTP {response.status_code}", status_code=response.status_code
            )

        ctx.log(LogLevel.SUCCESS, f"HTTP response: {response.status_code}", result)
        return result


class ScriptExecutor(NodeExecutor):
    kind = NodeKind.SCRIPT

    async def execute(self, config: ScriptConfig, previous_output: Any, ctx: RunContext) -> Any:
        config.require()
        if config.language != "javascript":
            raise UnsupportedCapabilityError(
                f"Unsupported script language: {config.language} (only javascript runs locally)"
            )
        ctx.log(LogLevel.INFO, f"Running script: {config.language}")

        ctx.sandbox.clear_console()
        result = ctx.sandbox.execute_script(config.code, previous_output)

        data: dict[str, Any] = {"result": result}
        if ctx.sandbox.console:
            data["console"] = [line.text for line in ctx.sandbox.console]
        ctx.log(LogLevel.SUCCESS, "Script executed", data)
        return result


class ConditionExecutor(NodeExecutor):
    kind = NodeKind.CONDITION

    async def execute(self, config: ConditionConfig, previous_output: Any, ctx: RunContext) -> Any:
        config.require()
        ctx.log(LogLevel.INFO, f"Evaluating condition: {config.expression}")

        context: dict[str, Any] = {}
        if isinstance(previous_output, dict):
            context.update(previous_output)
        context["input"] = previous_output

        result = ctx.sandbox.evaluate_expression(config.expression, context)
        ctx.log(
            LogLevel.SUCCESS,
            f"Condition evaluated: {result}",
            {"expression": config.expression, "result": result},
        )
        return {"result": result}


class ImageExecutor(NodeExecutor):
    kind = NodeKind.IMAGE

    async def execute(self, config: ImageConfig, previous_output: Any, ctx: RunContext) -> Any:
        config.require()
        ctx.log(LogLevel.INFO, f"Generating image: {config.provider}")

        prompt = compose_prompt(config.prompt, previous_output, "Reference")
        prompt = ctx.resolver.resolve(prompt, {"input": previous_output})

        api_key = _require_credential(ctx, config.provider, "image")
        result = await ctx.images.generate(config, prompt, api_key)

        output = result.to_output()
        ctx.log(LogLevel.SUCCESS, f"Generated {len(result.images)} image(s)", output)
        return output


EXECUTORS: dict[NodeKind, NodeExecutor] = {
    executor.kind: executor
    for executor in (
        TriggerExecutor(),
        LLMExecutor(),
        HTTPExecutor(),
        ScriptExecutor(),
        ConditionExecutor(),
        ImageExecutor(),
        TerminatorExecutor(),
    )
}


def get_executor(kind: NodeKind | str) -> NodeExecutor:
    return EXECUTORS[NodeKind(kind)]
