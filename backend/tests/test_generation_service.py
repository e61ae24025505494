"""
End-to-end generation runs with faked vendors
"""

import json
from uuid import UUID, uuid4

import pytest
from sqlalchemy import select

from inteligencia.errors import (
    NoProviderAvailable,
    NotFoundError,
    ProviderError,
    ProviderRateLimitError,
    ValidationError,
)
from inteligencia.models import GenerationNode, UsageLog
from inteligencia.services import CredentialStore, GenerationJob, GenerationService, TreeStore
from inteligencia.services.generation_service import build_step_prompt
from tests.fakes import FakeVendors, anthropic_message, google_content, openai_chat, perplexity_chat


async def usage_logs(db):
    result = await db.execute(select(UsageLog).order_by(UsageLog.requested_at))
    return list(result.scalars().all())


async def all_nodes(db):
    return list((await db.execute(select(GenerationNode))).scalars().all())


# ============================================================================
# DIRECT
# ============================================================================

async def test_direct_alternatives_under_new_root(db, configure_provider):
    await configure_provider("openai")
    vendors = FakeVendors({"chat/completions": openai_chat("A", "B", "C", prompt_tokens=900, completion_tokens=300)})
    service = GenerationService(db, transport=vendors.transport)

    result = await service.generate(GenerationJob(prompt="Write about spring menus", output_count=3))

    assert result["success"] is True
    data = result["data"]
    assert data["mode"] == "direct"
    assert data["selectedIndex"] == 0
    assert [r["content"] for r in data["results"]] == ["A", "B", "C"]
    assert result["usage"]["inputTokens"] == 900
    assert result["usage"]["totalTokens"] == 1200
    assert result["timing"]["totalMs"] >= 0

    root_id = UUID(data["rootNodeId"])
    store = TreeStore(db)
    root = await store.get_node_row(root_id)
    assert root.type == "idea"
    assert root.content == "Write about spring menus"

    children = [n for n in await store.get_tree(root_id) if n.id != root_id]
    assert len(children) == 3
    assert all(n.parent_id == root_id and n.type == "blog" for n in children)
    selected = [n for n in await store.get_tree(root_id) if n.selected]
    assert [str(n.id) for n in selected] == [data["results"][0]["nodeId"]]

    logs = await usage_logs(db)
    assert len(logs) == 1
    assert logs[0].success is True
    assert logs[0].provider == "openai"
    assert logs[0].tokens_input == 900
    assert str(logs[0].generation_node_id) == data["results"][0]["nodeId"]

    credential = await CredentialStore(db).get("openai")
    assert credential.current_usage == pytest.approx(900 / 1000 * 0.005 + 300 / 1000 * 0.015)


async def test_direct_under_existing_parent(db, configure_provider):
    await configure_provider("anthropic")
    store = TreeStore(db)
    root = await store.create_node(type="idea", content="Idea")
    outline = await store.create_node(type="outline", content="Outline", parent_id=root.id)

    vendors = FakeVendors({"api.anthropic.com": anthropic_message("Blog body")})
    result = await GenerationService(db, transport=vendors.transport).generate(
        GenerationJob(prompt="Expand the outline", parent_node_id=outline.id)
    )

    node = await store.get_node_row(UUID(result["data"]["results"][0]["nodeId"]))
    assert node.parent_id == outline.id
    assert node.root_id == root.id
    assert result["data"]["rootNodeId"] == str(root.id)
    assert node.selected is True


async def test_unknown_parent_fails_before_any_vendor_call(db, configure_provider):
    await configure_provider("openai")
    vendors = FakeVendors({"chat/completions": openai_chat("x")})

    with pytest.raises(NotFoundError):
        await GenerationService(db, transport=vendors.transport).generate(
            GenerationJob(prompt="Hi", parent_node_id=uuid4())
        )
    assert vendors.requests == []


async def test_context_reaches_prompt_and_snapshot(db, configure_provider):
    from inteligencia.services import ContextSelection, ContextService

    await configure_provider("openai")
    guide = await ContextService(db).create_style_guide(name="Voice", content="Short sentences")
    vendors = FakeVendors({"chat/completions": openai_chat("Done")})

    result = await GenerationService(db, transport=vendors.transport).generate(GenerationJob(
        prompt="Write a teaser",
        vertical="hospitality",
        context=ContextSelection(style_guide_ids=[guide.id]),
    ))

    prompt = vendors.bodies("chat/completions")[0]["messages"][-1]["content"]
    assert "- Voice: Short sentences" in prompt
    assert prompt.endswith("Please tailor the content for the hospitality industry.")

    node = await TreeStore(db).get_node_row(UUID(result["data"]["results"][0]["nodeId"]))
    assert node.context["styleGuideIds"] == [str(guide.id)]
    assert node.vertical == "hospitality"


async def test_research_sources_are_kept(db, configure_provider):
    await configure_provider("perplexity")
    vendors = FakeVendors({"api.perplexity.ai": perplexity_chat("Findings", citations=["https://src.example"])})

    result = await GenerationService(db, transport=vendors.transport).generate(
        GenerationJob(task="research", prompt="Hotel trends 2026")
    )

    item = result["data"]["results"][0]
    assert item["sources"] == ["https://src.example"]
    node = await TreeStore(db).get_node_row(UUID(item["nodeId"]))
    assert node.type == "research"
    assert node.structured_content["sources"] == ["https://src.example"]


async def test_image_generation(db, configure_provider):
    await configure_provider("google")
    vendors = FakeVendors({":predict": {"predictions": [{"bytesBase64Encoded": "aW1n", "mimeType": "image/png"}]}})

    result = await GenerationService(db, transport=vendors.transport).generate(
        GenerationJob(task="image", prompt="A sunlit lobby")
    )

    item = result["data"]["results"][0]
    assert item["url"] == "data:image/png;base64,aW1n"
    node = await TreeStore(db).get_node_row(UUID(item["nodeId"]))
    assert node.type == "image"
    assert node.content == item["url"]


async def test_image_task_without_image_provider(db, configure_provider):
    await configure_provider("anthropic")
    with pytest.raises(NoProviderAvailable):
        await GenerationService(db).generate(GenerationJob(task="image", prompt="A lobby"))
    assert await usage_logs(db) == []


# ============================================================================
# FALLBACK
# ============================================================================

async def test_failed_provider_falls_back_to_next_in_chain(db, configure_provider):
    await configure_provider("google")
    await configure_provider("anthropic")
    vendors = FakeVendors({
        ":generateContent": (500, {"error": {"message": "backend unavailable"}}),
        "api.anthropic.com": anthropic_message("Claude wrote this"),
    })

    result = await GenerationService(db, transport=vendors.transport).generate(
        GenerationJob(task="writing", prompt="Write a post", provider="google")
    )

    assert result["data"]["results"][0]["provider"] == "anthropic"
    assert result["data"]["results"][0]["content"] == "Claude wrote this"

    logs = await usage_logs(db)
    assert [(log.provider, log.success) for log in logs] == [("google", False), ("anthropic", True)]
    assert "backend unavailable" in logs[0].error_message


async def test_exhausted_fallback_raises_last_provider_error(db, configure_provider):
    await configure_provider("openai")
    vendors = FakeVendors({"chat/completions": (429, {"error": {"message": "slow down"}})})

    with pytest.raises(ProviderRateLimitError) as exc:
        await GenerationService(db, transport=vendors.transport).generate(GenerationJob(prompt="Hi"))

    assert exc.value.status_code == 429
    logs = await usage_logs(db)
    assert len(logs) == 1
    assert logs[0].success is False
    assert await all_nodes(db) == []


async def test_no_provider_configured(db):
    with pytest.raises(NoProviderAvailable):
        await GenerationService(db).generate(GenerationJob(prompt="Hi"))


async def test_request_settings_override_credential(db, configure_provider):
    await configure_provider("openai", settings={"temperature": 0.2, "maxTokens": 800})
    vendors = FakeVendors({"chat/completions": openai_chat("ok")})

    await GenerationService(db, transport=vendors.transport).generate(
        GenerationJob(prompt="Hi", settings={"temperature": 0.9, "secret_flag": True})
    )

    body = vendors.bodies("chat/completions")[0]
    assert body["temperature"] == 0.9
    assert body["max_tokens"] == 800
    assert "secret_flag" not in body


# ============================================================================
# STRUCTURED
# ============================================================================

async def test_structured_workflow_chains_steps(db, configure_provider):
    await configure_provider("anthropic")
    outputs = ["IDEA", "TITLE", "SYNOPSIS", "OUTLINE", "BLOG"]
    vendors = FakeVendors({"api.anthropic.com": [anthropic_message(text) for text in outputs]})
    service = GenerationService(db, transport=vendors.transport)

    events = [e async for e in service.run(GenerationJob(mode="structured", task="blog_complete", prompt="Spa weekends"))]

    assert [e["type"] for e in events] == (
        ["generation_start"] + ["step_start", "step_complete"] * 5 + ["complete"]
    )
    data = events[-1]["data"]["data"]
    assert data["workflow"]["steps"] == ["idea", "title", "synopsis", "outline", "blog"]

    prompts = [body["messages"][0]["content"] for body in vendors.bodies("/messages")]
    assert prompts[0] == build_step_prompt("idea", "Spa weekends")
    assert prompts[1] == build_step_prompt("title", "IDEA")
    assert prompts[4] == build_step_prompt("blog", "OUTLINE")

    store = TreeStore(db)
    final = await store.get_node_row(UUID(data["finalNodeId"]))
    path = await store.get_path(final.id)
    assert [n.type for n in path] == ["idea", "idea", "title", "synopsis", "outline", "blog"]
    assert path[0].content == "Spa weekends"
    assert final.content == "BLOG"

    tree = await store.get_tree(UUID(data["rootNodeId"]))
    assert [n.id for n in tree if n.selected] == [final.id]
    assert len(await usage_logs(db)) == 5


async def test_structured_skips_optional_steps(db, configure_provider):
    await configure_provider("openai")
    vendors = FakeVendors({"chat/completions": openai_chat("step output")})

    result = await GenerationService(db, transport=vendors.transport).generate(GenerationJob(
        mode="structured", task="social_campaign", prompt="Summer sale", skip_steps=["title", "blog"],
    ))

    assert result["data"]["workflow"]["steps"] == ["idea", "blog", "social"]
    assert set(result["data"]["results"]) == {"idea", "blog", "social"}


async def test_unknown_workflow_uses_default(db, configure_provider):
    await configure_provider("openai")
    vendors = FakeVendors({"chat/completions": openai_chat("x")})

    result = await GenerationService(db, transport=vendors.transport).generate(
        GenerationJob(mode="structured", task="writing", prompt="Topic")
    )
    assert result["data"]["workflow"]["name"] == "blog_complete"


# ============================================================================
# EDIT / MULTI-VERTICAL / VALIDATION
# ============================================================================

async def test_edit_requires_content_and_instructions(db):
    with pytest.raises(ValidationError):
        await GenerationService(db).generate(GenerationJob(mode="edit_existing", existing_content="Text"))


async def test_edit_existing(db, configure_provider):
    await configure_provider("openai")
    vendors = FakeVendors({"chat/completions": openai_chat("Edited text")})

    result = await GenerationService(db, transport=vendors.transport).generate(GenerationJob(
        mode="edit_existing", existing_content="Original text", edit_instructions="Make it punchier",
    ))

    data = result["data"]
    assert data["editedContent"] == "Edited text"
    assert data["originalContent"] == "Original text"
    prompt = vendors.bodies("chat/completions")[0]["messages"][-1]["content"]
    assert "Instructions: Make it punchier" in prompt
    assert "Content to edit:\nOriginal text" in prompt

    node = await TreeStore(db).get_node_row(UUID(data["nodeId"]))
    assert node.type == "blog"
    assert node.mode == "edit_existing"
    assert node.selected is True
    assert data["rootNodeId"] == data["nodeId"]


async def test_multi_vertical(db, configure_provider):
    await configure_provider("openai")
    vendors = FakeVendors({
        "chat/completions": [openai_chat("Tech post"), (500, {"error": {"message": "overloaded"}})],
    })

    result = await GenerationService(db, transport=vendors.transport).generate(GenerationJob(
        mode="multi_vertical", prompt="New booking app", verticals=["tech", "healthcare"],
    ))

    by_vertical = result["data"]["results"]["byVertical"]
    assert by_vertical["tech"]["content"] == "Tech post"
    assert "error" in by_vertical["healthcare"]

    system = vendors.bodies("chat/completions")[0]["messages"][0]
    assert system == {"role": "system", "content": "You are generating content specifically for the tech industry."}

    store = TreeStore(db)
    root_id = UUID(result["data"]["rootNodeId"])
    tree = await store.get_tree(root_id)
    assert {n.vertical for n in tree if n.id != root_id} == {"tech"}
    assert len([n for n in tree if n.selected]) == 1

    logs = await usage_logs(db)
    assert [(log.vertical, log.success) for log in logs] == [("tech", True), ("healthcare", False)]


async def test_unknown_vertical(db):
    with pytest.raises(ValidationError):
        await GenerationService(db).generate(
            GenerationJob(mode="multi_vertical", prompt="x", verticals=["space"])
        )


@pytest.mark.parametrize("job", [
    GenerationJob(prompt=""),
    GenerationJob(prompt="x", output_count=0),
    GenerationJob(prompt="x", output_count=99),
    GenerationJob(prompt="x", mode="freestyle"),
])
async def test_invalid_jobs(db, job):
    with pytest.raises(ValidationError):
        await GenerationService(db).generate(job)


async def test_events_are_json_serializable(db, configure_provider):
    await configure_provider("openai")
    vendors = FakeVendors({"chat/completions": openai_chat("A", "B")})

    events = [e async for e in GenerationService(db, transport=vendors.transport).run(
        GenerationJob(prompt="Hi", output_count=2)
    )]

    assert [e["type"] for e in events] == ["generation_start", "output_complete", "output_complete", "complete"]
    assert events[2]["progress"] == {"completed": 2, "total": 2}
    json.dumps(events, default=str)


# ============================================================================
# FAILURE ATOMICITY
# ============================================================================

async def test_malformed_response_falls_back(db, configure_provider):
    await configure_provider("anthropic")
    await configure_provider("openai")
    vendors = FakeVendors({
        "api.anthropic.com": {"content": None},
        "chat/completions": openai_chat("GPT wrote this"),
    })

    result = await GenerationService(db, transport=vendors.transport).generate(
        GenerationJob(task="writing", prompt="Write a post", provider="anthropic")
    )

    assert result["data"]["results"][0]["provider"] == "openai"
    logs = await usage_logs(db)
    assert [(log.provider, log.success) for log in logs] == [("anthropic", False), ("openai", True)]
    assert "Malformed response" in logs[0].error_message


async def test_failed_structured_run_leaves_no_tree(db, configure_provider):
    await configure_provider("anthropic")
    vendors = FakeVendors({
        "api.anthropic.com": [
            anthropic_message("IDEA"),
            anthropic_message("TITLE"),
            anthropic_message("SYNOPSIS"),
            (500, {"error": {"message": "overloaded"}}),
        ],
    })

    with pytest.raises(ProviderError):
        await GenerationService(db, transport=vendors.transport).generate(
            GenerationJob(mode="structured", task="blog_complete", prompt="Spa weekends")
        )

    assert await all_nodes(db) == []

    logs = await usage_logs(db)
    assert [log.success for log in logs] == [True, True, True, False]
    assert all(log.generation_node_id is None for log in logs)

    spent = sum(log.cost for log in logs if log.success)
    assert spent > 0
    credential = await CredentialStore(db).get("anthropic")
    assert credential.current_usage == pytest.approx(spent)


async def test_failed_run_keeps_existing_tree_intact(db, configure_provider):
    await configure_provider("openai")
    store = TreeStore(db)
    root = await store.create_node(type="idea", content="Idea")
    chosen = await store.create_node(type="blog", content="Draft", parent_id=root.id, selected=True)
    vendors = FakeVendors({"chat/completions": (500, {"error": {"message": "down"}})})

    with pytest.raises(ProviderError):
        await GenerationService(db, transport=vendors.transport).generate(
            GenerationJob(prompt="Another draft", parent_node_id=root.id)
        )

    tree = await store.get_tree(root.id)
    assert {n.id for n in tree} == {root.id, chosen.id}
    assert [n.id for n in tree if n.selected] == [chosen.id]


# ============================================================================
# IMAGE PROMPTS
# ============================================================================

async def test_blog_output_fills_image_prompts(db, configure_provider):
    await configure_provider("openai")
    body = (
        "# Spring menus\n[IMAGE_PROMPT: A bright terrace at brunch]\n\n"
        "Seasonal produce arrives.\n[IMAGE_PROMPT: Close-up photo of asparagus]\n"
    )
    vendors = FakeVendors({"chat/completions": openai_chat(body)})

    result = await GenerationService(db, transport=vendors.transport).generate(
        GenerationJob(task="writing", prompt="Spring menus")
    )

    detail = await TreeStore(db).get_node(UUID(result["data"]["results"][0]["nodeId"]))
    assert [(p.position, p.type, p.final_text) for p in detail.image_prompts] == [
        (0, "featured", "A bright terrace at brunch"),
        (1, "inline", "Close-up photo of asparagus"),
    ]
