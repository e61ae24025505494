"""
Generation Service
Orchestrates select -> generate -> persist -> log for every generation mode

Each run is an async generator of progress events. The JSON API drains it
and returns the final "complete" payload; the streaming API forwards every
event to the client as it happens.
"""

import logging
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Set, Tuple
from uuid import UUID

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from ..adapters.llm import (
    GenerationContext,
    GenerationRequest,
    GenerationResult,
    GenerationType,
    ProviderConfig,
    get_adapter,
)
from ..config import VERTICALS, get_settings
from ..errors import NoProviderAvailable, ProviderError, ValidationError
from ..models import GenerationMode, GenerationNode, NodeType, utcnow
from .analytics_service import ALL_VERTICALS, AnalyticsService
from .context_service import ContextSelection, ContextService
from .credential_store import CredentialStore
from .provider_registry import list_supported_providers, required_capabilities_for
from .provider_selector import ProviderSelector
from .tree_store import TreeStore

logger = logging.getLogger(__name__)


# ============================================================================
# WORKFLOWS & PROMPTS
# ============================================================================

WORKFLOWS: Dict[str, List[str]] = {
    "blog_complete": ["idea", "title", "synopsis", "outline", "blog"],
    "blog_with_research": ["idea", "research", "title", "synopsis", "outline", "blog"],
    "social_campaign": ["idea", "title", "blog", "social"],
}
DEFAULT_WORKFLOW = "blog_complete"

# Steps the caller may skip; the final blog/social step always runs
SKIPPABLE_STEPS = {"research", "title", "synopsis", "outline"}

STEP_PROMPTS: Dict[str, str] = {
    "idea": "Generate a comprehensive blog idea based on: {input}",
    "research": "Research the following topic and summarize key facts with sources: {input}",
    "title": "Create compelling blog titles for: {input}",
    "synopsis": "Write a brief synopsis for a blog about: {input}",
    "outline": "Create a detailed outline for: {input}",
    "blog": "Write a complete blog post based on: {input}",
    "social": "Create social media posts to promote: {input}",
}

# Selector task used for each workflow step
STEP_TASKS: Dict[str, str] = {
    "idea": "ideation",
    "research": "research",
    "title": "creative",
    "synopsis": "writing",
    "outline": "analysis",
    "blog": "writing",
    "social": "creative",
}

# Node type produced by a direct generation of each task
TASK_NODE_TYPES: Dict[str, str] = {
    "ideation": NodeType.IDEA.value,
    "research": NodeType.RESEARCH.value,
    "writing": NodeType.BLOG.value,
    "creative": NodeType.BLOG.value,
    "analysis": NodeType.BLOG.value,
    "image": NodeType.IMAGE.value,
    "social": NodeType.SOCIAL.value,
}

EDIT_PROMPT = (
    "Please edit the following content according to these instructions:\n\n"
    "Instructions: {instructions}\n\n"
    "Content to edit:\n{content}"
)
EDIT_SYSTEM_PROMPT = (
    "You are a professional editor. Apply the requested changes and return only the edited content."
)
VERTICAL_SYSTEM_PROMPT = "You are generating content specifically for the {vertical} industry."


@dataclass
class GenerationJob:
    """Everything a caller can ask of one generation run"""
    mode: str = GenerationMode.DIRECT.value
    task: str = "writing"
    prompt: Optional[str] = None
    vertical: Optional[str] = None
    verticals: List[str] = field(default_factory=list)
    provider: Optional[str] = None
    model: Optional[str] = None
    output_count: int = 1
    parent_node_id: Optional[UUID] = None
    existing_content: Optional[str] = None
    edit_instructions: Optional[str] = None
    skip_steps: List[str] = field(default_factory=list)
    required_capabilities: List[str] = field(default_factory=list)
    settings: Dict[str, Any] = field(default_factory=dict)
    context: ContextSelection = field(default_factory=ContextSelection)

    # Image only
    size: str = "1024x1024"
    quality: str = "standard"
    style: str = "vivid"


@dataclass
class StepOutcome:
    """One successful provider call and the nodes it produced"""
    config: ProviderConfig
    results: List[GenerationResult]
    nodes: List[GenerationNode]
    duration_ms: int


class UsageTotals:
    """Running token and cost totals across every call of a run"""

    def __init__(self):
        self.input_tokens = 0
        self.output_tokens = 0
        self.cost = 0.0

    def add(self, results: List[GenerationResult]) -> None:
        for result in results:
            self.input_tokens += result.usage.input_tokens
            self.output_tokens += result.usage.output_tokens
            self.cost += result.cost

    def to_dict(self) -> Dict[str, Any]:
        return {
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "totalTokens": self.input_tokens + self.output_tokens,
            "cost": round(self.cost, 6),
        }


def build_step_prompt(step: str, source: str) -> str:
    return STEP_PROMPTS[step].format(input=source)


def _result_payload(result: GenerationResult, node: GenerationNode, index: int) -> Dict[str, Any]:
    payload = result.to_dict()
    payload["nodeId"] = str(node.id)
    payload["index"] = index
    return payload


def _timestamp(value: float) -> str:
    return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()


def _structured_content(result: GenerationResult) -> Optional[Dict[str, Any]]:
    if not result.metadata and not result.sources:
        return None
    return {"metadata": result.metadata, "sources": result.sources}


class GenerationService:
    """
    Service for running generations end to end.
    All writes go through the caller's session; commit is the caller's job.
    """

    def __init__(self, db: AsyncSession, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.db = db
        self.transport = transport
        self.selector = ProviderSelector(db)
        self.tree = TreeStore(db)
        self.analytics = AnalyticsService(db)
        self.credentials = CredentialStore(db)
        self.contexts = ContextService(db)
        # Usage log fields buffered until the run settles
        self._pending_usage: List[Dict[str, Any]] = []

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    async def generate(self, job: GenerationJob) -> Dict[str, Any]:
        """Run to completion and return the final payload"""
        final: Dict[str, Any] = {}
        async for event in self.run(job):
            if event["type"] == "complete":
                final = event["data"]
        return final

    async def run(self, job: GenerationJob) -> AsyncIterator[Dict[str, Any]]:
        """
        Run a job, yielding progress events.

        The last event is {"type": "complete", "data": {...}} where data holds
        success, the mode payload, aggregate usage and timing.

        Tree writes happen inside a savepoint: a run that raises leaves no
        nodes, selection changes or context counters behind. Usage logs and
        provider spend are written after the savepoint settles, so a failed
        run still records every vendor call it made.
        """
        self.validate(job)
        handlers = {
            GenerationMode.DIRECT.value: self._run_direct,
            GenerationMode.STRUCTURED.value: self._run_structured,
            GenerationMode.EDIT_EXISTING.value: self._run_edit,
            GenerationMode.MULTI_VERTICAL.value: self._run_multi_vertical,
        }

        started = time.time()
        totals = UsageTotals()
        payload: Dict[str, Any] = {}
        self._pending_usage = []

        logger.info(f"Starting {job.mode} generation (task={job.task}, provider={job.provider or 'auto'})")
        savepoint = await self.db.begin_nested()
        try:
            async for event in handlers[job.mode](job, totals, payload):
                yield event
        except Exception:
            await savepoint.rollback()
            logger.info(f"{job.mode} generation failed; discarded its tree writes")
            await self._write_usage(keep_nodes=False)
            raise
        await savepoint.commit()
        await self._write_usage(keep_nodes=True)

        finished = time.time()
        yield {
            "type": "complete",
            "data": {
                "success": True,
                "data": payload,
                "usage": totals.to_dict(),
                "timing": {
                    "startTime": _timestamp(started),
                    "endTime": _timestamp(finished),
                    "totalMs": int((finished - started) * 1000),
                },
            },
        }

    def validate(self, job: GenerationJob) -> None:
        """Reject a malformed job before any provider or database work"""
        modes = {m.value for m in GenerationMode}
        if job.mode not in modes:
            raise ValidationError(f"Invalid generation mode: {job.mode}. Must be one of {sorted(modes)}")

        max_outputs = get_settings().MAX_OUTPUT_COUNT
        if not 1 <= job.output_count <= max_outputs:
            raise ValidationError(f"outputCount must be between 1 and {max_outputs}")

        if job.mode == GenerationMode.EDIT_EXISTING.value:
            if not job.existing_content or not job.edit_instructions:
                raise ValidationError("existingContent and editInstructions are required for edit_existing")
        elif not job.prompt or not job.prompt.strip():
            raise ValidationError("prompt is required")

        if job.vertical and job.vertical != ALL_VERTICALS and job.vertical not in VERTICALS:
            raise ValidationError(f"Unknown vertical: {job.vertical}")
        unknown = [v for v in job.verticals if v not in VERTICALS]
        if unknown:
            raise ValidationError(f"Unknown verticals: {', '.join(unknown)}")

    # =========================================================================
    # PROVIDER CALLS
    # =========================================================================

    async def _call_with_fallback(
        self,
        job: GenerationJob,
        task_type: str,
        request: GenerationRequest,
        vertical: Optional[str],
    ) -> Tuple[ProviderConfig, List[GenerationResult], int]:
        """
        Ask the selector for a provider and call it; on a provider failure the
        provider is excluded and selection runs again.

        Every failed attempt is queued for the usage log. The successful
        attempt is queued by the caller once its nodes exist.
        """
        required = required_capabilities_for(task_type, job.required_capabilities)
        if request.type == GenerationType.IMAGE and "image" not in required:
            required.append("image")

        excluded: Set[str] = set()
        last_error: Optional[ProviderError] = None

        for _ in range(len(list_supported_providers())):
            try:
                config = await self.selector.select_provider(
                    task_type,
                    preferred_provider=job.provider,
                    required_capabilities=required,
                    exclude_providers=excluded,
                    model=job.model,
                )
            except NoProviderAvailable:
                if last_error is not None:
                    raise last_error
                raise

            config.settings = config.settings.merged(job.settings)
            adapter = get_adapter(config, transport=self.transport)

            started = time.perf_counter()
            try:
                results = await adapter.generate(request)
            except ProviderError as e:
                duration_ms = int((time.perf_counter() - started) * 1000)
                logger.warning(f"Provider {config.provider} failed for {task_type}: {e.cause}")
                self._pending_usage.append(dict(
                    provider=config.provider,
                    model=config.model,
                    task_type=task_type,
                    success=False,
                    vertical=vertical,
                    duration_ms=duration_ms,
                    error_message=e.message[:500],
                    requested_at=utcnow(),
                ))
                excluded.add(config.provider)
                last_error = e
                continue

            duration_ms = int((time.perf_counter() - started) * 1000)
            logger.info(
                f"Generated {len(results)} output(s) with {config.provider}/{config.model} "
                f"for {task_type} in {duration_ms}ms"
            )
            return config, results, duration_ms

        if last_error is not None:
            raise last_error
        raise NoProviderAvailable(task_type)

    def _record_success(
        self,
        config: ProviderConfig,
        task_type: str,
        vertical: Optional[str],
        results: List[GenerationResult],
        nodes: List[GenerationNode],
        duration_ms: int,
    ) -> None:
        self._pending_usage.append(dict(
            provider=config.provider,
            model=results[0].model if results else config.model,
            task_type=task_type,
            success=True,
            vertical=vertical,
            tokens_input=sum(r.usage.input_tokens for r in results),
            tokens_output=sum(r.usage.output_tokens for r in results),
            cost=sum(r.cost for r in results),
            duration_ms=duration_ms,
            content_length=sum(len(r.output) for r in results),
            generation_node_id=nodes[0].id if nodes else None,
            requested_at=utcnow(),
        ))

    async def _write_usage(self, keep_nodes: bool) -> None:
        """
        Flush buffered usage logs and charge successful calls to their
        provider's budget. Node links are dropped when the tree was rolled back.
        """
        pending, self._pending_usage = self._pending_usage, []
        for entry in pending:
            if not keep_nodes:
                entry["generation_node_id"] = None
            await self.analytics.record(**entry)
            if entry["success"]:
                await self.credentials.increment_usage(entry["provider"], entry["cost"])

    async def _generate_nodes(
        self,
        job: GenerationJob,
        task_type: str,
        request: GenerationRequest,
        node_type: str,
        parent: Optional[GenerationNode],
        snapshot: Dict[str, Any],
        totals: UsageTotals,
        vertical: Optional[str] = None,
        select_first: bool = False,
        root_factory=None,
    ) -> StepOutcome:
        """
        One provider call persisted as sibling nodes under parent.

        root_factory builds the parent lazily, so a run that never reaches a
        provider leaves no orphan root behind.
        """
        log_vertical = vertical or job.vertical
        config, results, duration_ms = await self._call_with_fallback(
            job, task_type, request, log_vertical
        )
        if parent is None and root_factory is not None:
            parent = await root_factory()

        nodes = []
        for index, result in enumerate(results):
            node = await self.tree.create_node(
                type=node_type,
                mode=job.mode,
                content=result.output,
                structured_content=_structured_content(result),
                parent_id=parent.id if parent is not None else None,
                selected=select_first and index == 0,
                vertical=log_vertical,
                provider=result.provider,
                model=result.model,
                prompt=request.prompt,
                context=snapshot,
                tokens_input=result.usage.input_tokens,
                tokens_output=result.usage.output_tokens,
                cost=result.cost,
            )
            nodes.append(node)

        self._record_success(config, task_type, log_vertical, results, nodes, duration_ms)
        totals.add(results)
        return StepOutcome(config=config, results=results, nodes=nodes, duration_ms=duration_ms)

    async def _resolve_context(self, job: GenerationJob):
        selection = job.context
        if job.vertical and job.vertical != ALL_VERTICALS and not selection.vertical:
            selection = replace(selection, vertical=job.vertical)
        return await self.contexts.build_context(selection)

    def _root_factory(self, job: GenerationJob, snapshot: Dict[str, Any], vertical: Optional[str] = None):
        async def create_root() -> GenerationNode:
            if job.parent_node_id is not None:
                return await self.tree.get_node_row(job.parent_node_id)
            return await self.tree.create_node(
                type=NodeType.IDEA.value,
                mode=job.mode,
                content=job.prompt,
                vertical=vertical or job.vertical,
                prompt=job.prompt,
                context=snapshot,
            )
        return create_root

    async def _existing_parent(self, job: GenerationJob) -> Optional[GenerationNode]:
        """Fail fast on a bad parentNodeId before any provider is called"""
        if job.parent_node_id is None:
            return None
        return await self.tree.get_node_row(job.parent_node_id)

    # =========================================================================
    # MODES
    # =========================================================================

    async def _run_direct(self, job: GenerationJob, totals: UsageTotals, payload: Dict[str, Any]):
        resolved = await self._resolve_context(job)
        parent = await self._existing_parent(job)
        is_image = job.task == GenerationType.IMAGE.value

        yield {"type": "generation_start", "mode": job.mode, "task": job.task, "outputCount": job.output_count}

        request = GenerationRequest(
            prompt=job.prompt,
            type=GenerationType.IMAGE if is_image else GenerationType.TEXT,
            context=resolved.context,
            output_count=job.output_count,
            size=job.size,
            quality=job.quality,
            style=job.style,
        )
        outcome = await self._generate_nodes(
            job,
            job.task,
            request,
            TASK_NODE_TYPES.get(job.task, NodeType.BLOG.value),
            parent,
            resolved.snapshot,
            totals,
            select_first=True,
            root_factory=self._root_factory(job, resolved.snapshot),
        )

        results = []
        for index, (result, node) in enumerate(zip(outcome.results, outcome.nodes)):
            item = _result_payload(result, node, index)
            results.append(item)
            yield {
                "type": "output_complete",
                "index": index,
                "result": item,
                "progress": {"completed": index + 1, "total": len(outcome.results)},
            }

        root_id = outcome.nodes[0].tree_root_id if outcome.nodes else None
        payload.update({
            "mode": job.mode,
            "task": job.task,
            "results": results,
            "selectedIndex": 0,
            "rootNodeId": str(root_id) if root_id else None,
        })

    async def _run_structured(self, job: GenerationJob, totals: UsageTotals, payload: Dict[str, Any]):
        workflow = job.task if job.task in WORKFLOWS else DEFAULT_WORKFLOW
        steps = [
            s for s in WORKFLOWS[workflow]
            if not (s in job.skip_steps and s in SKIPPABLE_STEPS)
        ]
        resolved = await self._resolve_context(job)
        parent = await self._existing_parent(job)
        root_factory = self._root_factory(job, resolved.snapshot)

        yield {"type": "generation_start", "mode": job.mode, "workflow": workflow, "steps": steps}

        results: Dict[str, Any] = {}
        source = job.prompt
        last_node: Optional[GenerationNode] = None

        for position, step in enumerate(steps):
            yield {"type": "step_start", "step": step, "index": position, "total": len(steps)}

            request = GenerationRequest(
                prompt=build_step_prompt(step, source),
                context=resolved.context,
                output_count=1,
            )
            outcome = await self._generate_nodes(
                job,
                STEP_TASKS[step],
                request,
                step,
                parent,
                resolved.snapshot,
                totals,
                root_factory=root_factory,
            )
            last_node = outcome.nodes[0]
            parent = last_node
            source = outcome.results[0].output

            results[step] = _result_payload(outcome.results[0], last_node, 0)
            yield {
                "type": "step_complete",
                "step": step,
                "index": position,
                "result": results[step],
                "progress": {"completed": position + 1, "total": len(steps)},
            }

        await self.tree.set_selected(last_node.id)

        payload.update({
            "mode": job.mode,
            "workflow": {"name": workflow, "steps": steps},
            "results": results,
            "rootNodeId": str(last_node.tree_root_id),
            "finalNodeId": str(last_node.id),
        })

    async def _run_edit(self, job: GenerationJob, totals: UsageTotals, payload: Dict[str, Any]):
        resolved = await self._resolve_context(job)
        parent = await self._existing_parent(job)

        yield {"type": "generation_start", "mode": job.mode, "task": "edit"}

        request = GenerationRequest(
            prompt=EDIT_PROMPT.format(instructions=job.edit_instructions, content=job.existing_content),
            context=resolved.context,
            system_prompt=EDIT_SYSTEM_PROMPT,
        )
        outcome = await self._generate_nodes(
            job,
            "writing",
            request,
            NodeType.BLOG.value,
            parent,
            resolved.snapshot,
            totals,
            select_first=True,
        )
        node = outcome.nodes[0]
        result = _result_payload(outcome.results[0], node, 0)
        yield {"type": "output_complete", "index": 0, "result": result, "progress": {"completed": 1, "total": 1}}

        payload.update({
            "mode": job.mode,
            "nodeId": str(node.id),
            "rootNodeId": str(node.tree_root_id),
            "originalContent": job.existing_content,
            "editedContent": outcome.results[0].output,
            "instructions": job.edit_instructions,
            "results": [result],
        })

    async def _run_multi_vertical(self, job: GenerationJob, totals: UsageTotals, payload: Dict[str, Any]):
        if job.verticals:
            targets = list(dict.fromkeys(job.verticals))
        elif job.vertical and job.vertical != ALL_VERTICALS:
            targets = [job.vertical]
        else:
            targets = list(VERTICALS)

        # Vertical tailoring comes from the per-vertical context below
        base = await self.contexts.build_context(replace(job.context, vertical=None))
        parent = await self._existing_parent(job)
        root_factory = self._root_factory(job, base.snapshot, vertical=ALL_VERTICALS)

        yield {"type": "generation_start", "mode": job.mode, "verticals": targets}

        by_vertical: Dict[str, Any] = {}
        last_error: Optional[Exception] = None
        selected = False

        for position, vertical in enumerate(targets):
            yield {"type": "step_start", "step": vertical, "index": position, "total": len(targets)}

            context: GenerationContext = replace(base.context, vertical=vertical)
            request = GenerationRequest(
                prompt=job.prompt,
                context=context,
                system_prompt=VERTICAL_SYSTEM_PROMPT.format(vertical=vertical),
            )
            snapshot = dict(base.snapshot, vertical=vertical)
            try:
                outcome = await self._generate_nodes(
                    job,
                    job.task,
                    request,
                    TASK_NODE_TYPES.get(job.task, NodeType.BLOG.value),
                    parent,
                    snapshot,
                    totals,
                    vertical=vertical,
                    select_first=not selected,
                    root_factory=root_factory,
                )
            except (ProviderError, NoProviderAvailable) as e:
                logger.warning(f"Vertical {vertical} failed: {e.message}")
                by_vertical[vertical] = {"error": e.public_message}
                last_error = e
                yield {"type": "step_complete", "step": vertical, "index": position, "error": e.public_message}
                continue

            node = outcome.nodes[0]
            parent = await self.tree.get_node_row(node.parent_id)
            selected = True
            by_vertical[vertical] = _result_payload(outcome.results[0], node, 0)
            yield {
                "type": "step_complete",
                "step": vertical,
                "index": position,
                "result": by_vertical[vertical],
                "progress": {"completed": position + 1, "total": len(targets)},
            }

        if not selected:
            raise last_error

        payload.update({
            "mode": job.mode,
            "targetVerticals": targets,
            "results": {"byVertical": by_vertical},
            "rootNodeId": str(parent.tree_root_id),
        })
