"""agentgraph CLI - run multi-agent LLM workflows from the terminal."""

import json
import logging
from typing import Any, Optional

import click
import yaml
from rich.logging import RichHandler

from .agents.loader import load_agents_from_dict, register_agents
from .agents.registry import AgentRegistry
from .config import ConfigManager
from .errors import AgentGraphError, UnknownWorkflow
from .llm.client import LLMClient
from .project import ProjectContext
from .providers.registry import create_providers, discover_providers
from .runtime.context import RunStatus
from .runtime.executor import Executor, RunEvent, Verdict
from .ui.output import (
    render_checkpoint,
    render_error,
    render_event,
    render_merged_result,
    render_run_summary,
    render_table,
)
from .ui.theme import console, err_console
from .workflow.definition import WorkflowDefinition
from .workflow.loader import load_workflows_from_dict
from .workflow.templates import create_workflow, list_templates


class AgentGraphApp:
    """Wires configuration, providers, project agents and workflows together."""

    def __init__(self, config_path: Optional[str] = None, project_dir: Optional[str] = None):
        self.config = ConfigManager(config_path)
        discover_providers()
        self.providers = create_providers(self.config.get_provider_config)
        self.retry_policy = self.config.get_retry_policy()
        self.clients = {
            name: LLMClient(provider, retry_policy=self.retry_policy)
            for name, provider in self.providers.items()
        }
        self.project = ProjectContext(project_dir)
        self.agent_defs = load_agents_from_dict(self.project.agents)
        self.registry = register_agents(
            AgentRegistry(),
            self.agent_defs,
            self.clients,
            default_provider=self.config.get_default_provider(),
        )
        self._workflows: Optional[dict[str, WorkflowDefinition]] = None

    def close(self) -> None:
        for provider in self.providers.values():
            provider.close()

    @property
    def project_workflows(self) -> dict[str, WorkflowDefinition]:
        if self._workflows is None:
            self._workflows = load_workflows_from_dict(self.project.workflows, self.registry)
        return self._workflows

    def get_workflow(self, name: str, options: Optional[dict[str, Any]] = None) -> WorkflowDefinition:
        """Project workflows take precedence over built-in templates."""
        if name in self.project.workflows:
            return self.project_workflows[name]
        try:
            return create_workflow(name, self.registry, **(options or {}))
        except UnknownWorkflow:
            available = sorted(set(self.project.workflows) | {t["name"] for t in list_templates()})
            raise UnknownWorkflow(f"{name} (available: {', '.join(available)})") from None

    def build_executor(self, **overrides: Any) -> Executor:
        """Executor from config, with non-None ``overrides`` applied."""
        settings = self.config.get_executor_config()
        settings.update({k: v for k, v in overrides.items() if v is not None})
        return Executor(self.registry, retry_policy=self.retry_policy, **settings)


def setup_logging(level: str) -> None:
    """Route library logging through rich on stderr."""
    logger = logging.getLogger("agentgraph")
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)
    handler = RichHandler(console=err_console, show_path=False, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(level)


def parse_pairs(pairs: tuple[str, ...], param: str) -> dict[str, Any]:
    """Parse ``KEY=VALUE`` arguments; values are read as YAML scalars or lists."""
    parsed: dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"expected KEY=VALUE, got {pair!r}", param_hint=param)
        try:
            value = yaml.safe_load(raw) if raw else ""
        except yaml.YAMLError:
            value = raw
        parsed[key.strip()] = value
    return parsed


def get_app(ctx: click.Context) -> AgentGraphApp:
    """Get or create the app instance for this invocation."""
    obj = ctx.ensure_object(dict)
    if "app" not in obj:
        try:
            app = AgentGraphApp(obj.get("config_path"), obj.get("project_dir"))
        except AgentGraphError as e:
            raise click.ClickException(str(e)) from e
        level = obj.get("log_level") or app.config.get_logging_level()
        setup_logging(level)
        ctx.find_root().call_on_close(app.close)
        obj["app"] = app
    return obj["app"]


def _prompt_verdict(event: RunEvent):
    render_checkpoint(event)
    if click.confirm(f"Approve '{event.node_id}'?", default=True, err=True):
        return Verdict.APPROVE
    feedback = click.prompt("Reason", default="", show_default=False, err=True)
    return Verdict.REJECT, feedback or None


# CLI Commands
@click.group()
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="Config file path")
@click.option("--project", "project_dir", type=click.Path(file_okay=False), help="Project directory")
@click.option("--verbose", "-v", count=True, help="More log output (-vv for debug)")
@click.pass_context
def cli(ctx, config_path, project_dir, verbose):
    """agentgraph - run dependency-aware multi-agent LLM workflows.

    Agents and workflows come from the nearest .agentgraph/ directory;
    built-in workflow templates are always available.
    """
    obj = ctx.ensure_object(dict)
    obj["config_path"] = config_path
    obj["project_dir"] = project_dir
    if verbose:
        obj["log_level"] = "DEBUG" if verbose > 1 else "INFO"


@cli.command()
@click.argument("workflow")
@click.option("--input", "-i", "inputs", multiple=True, metavar="KEY=VALUE", help="Run input")
@click.option("--option", "-o", "options", multiple=True, metavar="KEY=VALUE",
              help="Workflow template option (e.g. businessId=acme)")
@click.option("--auto-approve", is_flag=True, help="Approve every checkpoint without asking")
@click.option("--dry-run", is_flag=True, help="Resolve inputs and schedule without calling agents")
@click.option("--max-concurrency", type=click.IntRange(min=1), help="Parallel node limit")
@click.option("--max-cost", type=float, help="Refuse to start when the estimate exceeds this (USD)")
@click.option("--json", "as_json", is_flag=True, help="Print the outcome as JSON")
@click.pass_context
def run(ctx, workflow, inputs, options, auto_approve, dry_run, max_concurrency, max_cost, as_json):
    """Run a workflow."""
    app = get_app(ctx)
    try:
        definition = app.get_workflow(workflow, parse_pairs(options, "--option"))
        executor = app.build_executor(
            dry_run=dry_run or None,
            max_concurrency=max_concurrency,
            max_cost_usd=max_cost,
            on_event=None if as_json else render_event,
        )
        initial = {**app.project.inputs, **parse_pairs(inputs, "--input")}
        outcome = executor.execute(
            definition,
            initial,
            verdict=None if auto_approve else _prompt_verdict,
        )
    except AgentGraphError as e:
        raise click.ClickException(str(e)) from e

    if as_json:
        click.echo(json.dumps(outcome.to_dict(), indent=2, default=str))
    else:
        render_run_summary(outcome)
        if outcome.merged_result:
            console.print()
            render_merged_result(outcome.merged_result)
    if outcome.status is not RunStatus.COMPLETED:
        failed = sorted(outcome.diagnostics.errors)
        detail = f": failed node(s) {', '.join(failed)}" if failed else ""
        render_error(f"run {outcome.status.value}{detail}")
        ctx.exit(1)


@cli.command()
@click.argument("workflow")
@click.option("--option", "-o", "options", multiple=True, metavar="KEY=VALUE",
              help="Workflow template option")
@click.pass_context
def validate(ctx, workflow, options):
    """Check a workflow and show its execution layers."""
    app = get_app(ctx)
    try:
        definition = app.get_workflow(workflow, parse_pairs(options, "--option"))
    except AgentGraphError as e:
        raise click.ClickException(str(e)) from e

    checkpoints = set(definition.checkpoints())
    rows = []
    for index, layer in enumerate(definition.execution_layers(), start=1):
        names = [f"{nid}*" if nid in checkpoints else nid for nid in layer]
        rows.append((index, ", ".join(names)))
    render_table(f"{definition.name} ({len(definition)} nodes, * = checkpoint)", ["Layer", "Nodes"], rows)
    click.echo(f"Workflow '{definition.id}' is valid.")


@cli.command()
@click.argument("workflow")
@click.option("--input", "-i", "inputs", multiple=True, metavar="KEY=VALUE", help="Run input")
@click.option("--option", "-o", "options", multiple=True, metavar="KEY=VALUE",
              help="Workflow template option")
@click.pass_context
def estimate(ctx, workflow, inputs, options):
    """Estimate the cost of a workflow run."""
    app = get_app(ctx)
    try:
        definition = app.get_workflow(workflow, parse_pairs(options, "--option"))
        executor = app.build_executor()
        initial = {**app.project.inputs, **parse_pairs(inputs, "--input")}
        estimates = executor.estimate_costs(definition, initial)
    except AgentGraphError as e:
        raise click.ClickException(str(e)) from e

    rows = [
        (nid, definition.get(nid).agent_type, f"${cost:.4f}")
        for nid, cost in estimates.items()
    ]
    render_table(f"Estimate: {definition.name}", ["Node", "Agent", "Cost"], rows)
    click.echo(f"Total: ${sum(estimates.values()):.4f}")


@cli.command()
@click.pass_context
def agents(ctx):
    """List registered agent types."""
    app = get_app(ctx)
    if not len(app.registry):
        click.echo("No agents defined. Add .agentgraph/agents.yaml to your project.")
        return
    rows = []
    for entry in app.registry.describe():
        agent_def = app.agent_defs.get(entry["type"])
        provider = (agent_def.provider if agent_def else None) or app.config.get_default_provider()
        model = (agent_def.model if agent_def else None) or "-"
        rows.append((entry["type"], entry["description"], provider, model))
    render_table("Agents", ["Type", "Description", "Provider", "Model"], rows)


@cli.command()
@click.pass_context
def workflows(ctx):
    """List project workflows and built-in templates."""
    app = get_app(ctx)
    rows = [
        (name, "project", str((entry or {}).get("description", "")))
        for name, entry in app.project.workflows.items()
    ]
    rows.extend(
        (t["name"], "built-in", t["description"])
        for t in list_templates()
        if t["name"] not in app.project.workflows
    )
    render_table("Workflows", ["Name", "Source", "Description"], rows)


@cli.command()
@click.pass_context
def config(ctx):
    """Show configuration."""
    app = get_app(ctx)
    console.print(f"Config file: {app.config.config_path}")
    console.print(f"Enabled providers: {app.config.get_enabled_providers()}")
    console.print(f"Default provider: {app.config.get_default_provider()}")
    console.print(app.project.summary())


if __name__ == "__main__":
    cli()
