"""Built-in workflow factories.

Each factory takes a registry plus keyword options and returns a validated
``WorkflowDefinition``.  The agent types they reference (``research``,
``analyst``, ``architect``, ``copywriter``, ``editor``) must be registered,
typically from the project's ``agents.yaml``.
"""

from typing import Any, Callable

from ..agents.registry import AgentRegistry
from ..errors import MissingWorkflowOption, UnknownWorkflow
from .definition import WorkflowDefinition

RESEARCH = "research"
ANALYST = "analyst"
ARCHITECT = "architect"
COPYWRITER = "copywriter"
EDITOR = "editor"

CONTENT_FORMATS = ("social", "blog", "email")
_POSTS_PER_PILLAR = {"quick": 2, "standard": 3, "deep": 5}


def _require(workflow: str, options: dict[str, Any], *names: str) -> None:
    missing = [n for n in names if not options.get(n)]
    if missing:
        raise MissingWorkflowOption(workflow, missing)


def research_brief(registry: AgentRegistry, **options: Any) -> WorkflowDefinition:
    """Research, then a SWOT-style analysis of the findings."""
    _require("research-brief", options, "businessId")
    business_id = options["businessId"]
    focus = options.get("focus")

    workflow = WorkflowDefinition(
        id="research-brief",
        name="Research Brief",
        registry=registry,
        description=f"Generate research brief for {business_id}",
        metadata={"businessId": business_id},
    )
    workflow.add_agent(
        "research",
        type=RESEARCH,
        inputs={"businessId": business_id, "focus": focus},
        critical=True,
    )
    workflow.add_agent(
        "analysis",
        type=ANALYST,
        depends_on=["research"],
        inputs={
            "analysisType": "swot",
            "question": focus or "Provide comprehensive strategic analysis",
        },
        input_map={"data": "research"},
    )
    return workflow


def competitive_analysis(registry: AgentRegistry, **options: Any) -> WorkflowDefinition:
    """Research and competitive positioning, ending in an approved offer design."""
    _require("competitive-analysis", options, "businessId")
    business_id = options["businessId"]

    workflow = WorkflowDefinition(
        id="competitive-analysis",
        name="Competitive Analysis",
        registry=registry,
        description=f"Competitive analysis for {business_id}",
        metadata={"businessId": business_id},
    )
    workflow.add_agent(
        "research",
        type=RESEARCH,
        inputs={"businessId": business_id, "focus": "competitive landscape and positioning"},
        critical=True,
    )
    workflow.add_agent(
        "competitive-analysis",
        type=ANALYST,
        depends_on=["research"],
        inputs={
            "analysisType": "competitive",
            "question": "How should we position against competitors?",
        },
        input_map={"data": "research"},
    )
    workflow.add_agent(
        "offer-design",
        type=ARCHITECT,
        depends_on=["competitive-analysis"],
        inputs={
            "designType": "offer",
            "objective": "Design differentiated offer based on competitive gaps",
        },
        input_map={
            "research": "research",
            "constraints": "competitive-analysis.classification",
        },
        checkpoint=True,
    )
    return workflow


def content_sprint(registry: AgentRegistry, **options: Any) -> WorkflowDefinition:
    """Research, parallel trend/audience analysis, a plan, copy per format, edit.

    Options: ``businessId`` (required), ``depth`` (quick, standard, deep)
    and ``formats`` (any of social, blog, email).
    """
    _require("content-sprint", options, "businessId")
    business_id = options["businessId"]
    depth = options.get("depth") or "standard"
    formats = options.get("formats") or list(CONTENT_FORMATS)
    if isinstance(formats, str):
        formats = [f.strip() for f in formats.split(",") if f.strip()]

    workflow = WorkflowDefinition(
        id="content-sprint",
        name="Content Sprint",
        registry=registry,
        description=f"Generate content sprint for {business_id}",
        metadata={"businessId": business_id, "depth": depth, "formats": list(formats)},
    )
    workflow.add_agent(
        "research",
        type=RESEARCH,
        inputs={"businessId": business_id, "focus": "content marketing and audience engagement"},
        critical=True,
    )
    workflow.add_agent(
        "trend-analysis",
        type=ANALYST,
        depends_on=["research"],
        inputs={
            "analysisType": "market",
            "question": "What content topics are trending and underserved in this market?",
        },
        input_map={"data": "research", "context": "research.competitiveAdvantages"},
    )
    workflow.add_agent(
        "audience-analysis",
        type=ANALYST,
        depends_on=["research"],
        inputs={
            "analysisType": "market",
            "question": "What content formats and topics resonate most with the target audience?",
        },
        input_map={"data": "research"},
    )
    workflow.add_agent(
        "content-plan",
        type=ARCHITECT,
        depends_on=["trend-analysis", "audience-analysis"],
        inputs={"designType": "content", "objective": f"Create a {depth} content sprint plan"},
        input_map={"research": "research", "targetAudience": "audience-analysis"},
        checkpoint=True,
    )

    voice = {"brandVoice": "research.brandVoice", "keyMessages": "research.keyMessages"}
    if "social" in formats:
        workflow.add_agent(
            "social-copy",
            type=COPYWRITER,
            depends_on=["content-plan"],
            inputs={
                "format": "social",
                "topic": "Pillar content topics",
                "constraints": {"postsPerPillar": _POSTS_PER_PILLAR.get(depth, 3)},
            },
            input_map={**voice, "topic": "content-plan.pillars"},
        )
    if "blog" in formats:
        workflow.add_agent(
            "blog-copy",
            type=COPYWRITER,
            depends_on=["content-plan"],
            inputs={"format": "blog", "topic": "Pillar blog posts"},
            input_map={**voice, "topic": "content-plan.pillars"},
        )
    if "email" in formats:
        workflow.add_agent(
            "email-copy",
            type=COPYWRITER,
            depends_on=["content-plan"],
            inputs={"format": "email", "topic": "Nurture sequence"},
            input_map=voice,
        )

    copy_nodes = [f"{f}-copy" for f in formats if f"{f}-copy" in workflow]
    if copy_nodes:
        workflow.add_agent(
            "editor",
            type=EDITOR,
            depends_on=copy_nodes,
            inputs={"purpose": "Content sprint editorial review"},
            input_map={"brandVoice": "research.brandVoice"},
            checkpoint=True,
        )
    return workflow


def microsite(registry: AgentRegistry, **options: Any) -> WorkflowDefinition:
    """Structure and copy for a landing, portfolio or service page."""
    _require("microsite", options, "businessId")
    business_id = options["businessId"]
    template_type = options.get("templateType") or "landing"
    topic = options.get("topic") or "Main value proposition"

    workflow = WorkflowDefinition(
        id=f"microsite-{template_type}",
        name=f"Microsite Generation ({template_type})",
        registry=registry,
        description=f"Generate {template_type} microsite content for {business_id}",
        metadata={"businessId": business_id, "templateType": template_type},
    )
    workflow.add_agent(
        "research",
        type=RESEARCH,
        inputs={"businessId": business_id, "focus": f"{template_type} page content"},
        critical=True,
    )
    workflow.add_agent(
        "audience-analysis",
        type=ANALYST,
        depends_on=["research"],
        inputs={
            "businessId": business_id,
            "analysisType": "market",
            "question": "Who is the target audience and what are their key pain points and desires?",
        },
        input_map={"context": "research"},
    )
    workflow.add_agent(
        "architect",
        type=ARCHITECT,
        depends_on=["research", "audience-analysis"],
        inputs={
            "designType": "microsite",
            "objective": f"Create a high-converting {template_type} page",
        },
        input_map={
            "research": "research",
            "targetAudience": "audience-analysis.targetAudience",
        },
        checkpoint=True,
    )
    workflow.add_agent(
        "hero-copy",
        type=COPYWRITER,
        depends_on=["architect"],
        inputs={"format": "hero", "topic": topic},
        input_map={
            "brandVoice": "research.brandVoice",
            "keyMessages": "research.keyMessages",
            "targetAudience": "audience-analysis.targetAudience",
        },
    )
    workflow.add_agent(
        "features-copy",
        type=COPYWRITER,
        depends_on=["architect"],
        inputs={"format": "landing", "topic": "Features and benefits"},
        input_map={"brandVoice": "research.brandVoice", "research": "research"},
    )
    workflow.add_agent(
        "cta-copy",
        type=COPYWRITER,
        depends_on=["architect"],
        inputs={"format": "headline", "topic": "Call to action and contact section"},
        input_map={"brandVoice": "research.brandVoice"},
    )
    workflow.add_agent(
        "editor",
        type=EDITOR,
        depends_on=["hero-copy", "features-copy", "cta-copy"],
        inputs={"purpose": f"{template_type} page for {business_id}"},
        input_map={
            "content": "hero-copy",
            "brandVoice": "research.brandVoice",
            "targetAudience": "audience-analysis.targetAudience",
        },
        checkpoint=True,
    )
    return workflow


WORKFLOW_TEMPLATES: dict[str, Callable[..., WorkflowDefinition]] = {
    "research-brief": research_brief,
    "competitive-analysis": competitive_analysis,
    "content-sprint": content_sprint,
    "microsite": microsite,
}


def list_templates() -> list[dict[str, str]]:
    """Name and one-line summary of every built-in workflow."""
    return [
        {"name": name, "description": (factory.__doc__ or "").strip().split("\n")[0]}
        for name, factory in WORKFLOW_TEMPLATES.items()
    ]


def create_workflow(name: str, registry: AgentRegistry, **options: Any) -> WorkflowDefinition:
    """Instantiate a built-in workflow by name.

    Raises:
        UnknownWorkflow: no template called ``name``.
        MissingWorkflowOption: a required option was not supplied.
    """
    factory = WORKFLOW_TEMPLATES.get(name)
    if factory is None:
        raise UnknownWorkflow(name)
    return factory(registry, **options)
