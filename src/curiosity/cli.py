"""CLI entry point for the curiosity engine."""

import logging
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import load_config, copy_defaults
from .errors import CuriosityError
from .models import MODE_QUICK
from .services import Services, build_services

console = Console()


@click.group()
@click.option("--config", "-c", "config_path", default=None, help="Path to config file")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.pass_context
def cli(ctx, config_path, verbose):
    """Curiosity Engine - concept graph, clusters and daily tags."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


def _get_config(ctx) -> dict:
    return load_config(ctx.obj.get("config_path"))


def _get_services(ctx) -> Services:
    if "services" not in ctx.obj:
        services = build_services(_get_config(ctx))
        ctx.obj["services"] = services
        ctx.call_on_close(services.close)
    return ctx.obj["services"]


@cli.command()
@click.option("--path", default=None, help="Custom base path")
@click.pass_context
def init(ctx, path):
    """Initialize the database, configuration and default tags."""
    import yaml

    base = Path(path).expanduser().resolve() if path else Path("~/.curiosity").expanduser()
    console.print(f"[bold green]Initializing curiosity engine at {base}[/]")
    base.mkdir(parents=True, exist_ok=True)

    config_file = base / "config.yaml"
    cfg = copy_defaults()
    cfg["db_path"] = str(base / "curiosity_engine.db")
    if not config_file.exists():
        header = (
            "# Storage backend: sqlite (persistent) or memory (nothing saved)\n"
            "# Set clustering.prune_stale: true to drop clusters that stop recurring.\n\n"
        )
        config_file.write_text(header + yaml.dump(cfg, default_flow_style=False, sort_keys=False))
        console.print(f"  Created config: {config_file}")

    ctx.obj["config_path"] = str(config_file)
    services = _get_services(ctx)
    created = services.daily.initialize_default_tags()
    if created:
        console.print(f"  Seeded {len(created)} default tags")

    console.print("[bold green]✓ Initialized![/]")
    console.print(f"  Database: {_get_config(ctx)['db_path']}")


@cli.command()
@click.argument("origin")
@click.argument("concepts", nargs=-1)
@click.option("--cluster/--no-cluster", default=False, help="Re-run cluster detection afterwards")
@click.option("--mode", type=click.IntRange(1, 3), default=None,
              help="Record ORIGIN as a spark: 1 quick, 2 deep dive, 3 thread")
@click.option("--tag", "tag_refs", multiple=True, help="Tag id or name the spark came from (repeatable)")
@click.pass_context
def process(ctx, origin, concepts, cluster, mode, tag_refs):
    """Add the CONCEPTS of one content item ORIGIN to the graph."""
    services = _get_services(ctx)

    if mode is not None or tag_refs:
        tag_ids = []
        for ref in tag_refs:
            tag = services.tags.get_tag_by_id(ref) or services.tags.get_tag_by_name(ref)
            tag_ids.append(tag.id if tag else ref)
        try:
            services.daily.record_spark(origin, tag_ids, mode=mode or MODE_QUICK, text=", ".join(concepts))
        except CuriosityError as e:
            console.print(f"[red]{e}[/]")
            return
        console.print(f"[green]✓ Recorded spark {origin} with {len(tag_ids)} tag(s)[/]")

    nodes = services.graph.process_content_concepts(origin, list(concepts))
    if not nodes:
        console.print("[yellow]No concepts given, graph unchanged.[/]")
        return

    console.print(f"[green]✓ Processed {len(nodes)} concept(s) for {origin}[/]")
    for n in nodes:
        console.print(f"  {n.name} (weight: {n.weight:.2f})")

    if cluster:
        ctx.invoke(detect)


@cli.command("cluster")
@click.pass_context
def detect(ctx):
    """Recompute concept clusters."""
    services = _get_services(ctx)
    console.print("[blue]Detecting clusters...[/]")
    clusters = services.clusters.detect_clusters()
    if not clusters:
        console.print("[yellow]No clusters found. Need more linked concepts.[/]")
        return

    console.print(f"[green]✓ Found {len(clusters)} cluster(s)[/]")
    for c in clusters:
        console.print(f"  {c.name}: {len(c.concepts)} concepts (coherence: {c.coherence:.2f})")


@cli.command()
@click.pass_context
def clusters(ctx):
    """List stored clusters."""
    services = _get_services(ctx)
    stored = services.clusters.get_all_clusters()
    if not stored:
        console.print("[yellow]No clusters stored. Run 'curiosity cluster'.[/]")
        return

    table = Table(title="Concept Clusters")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Concepts", justify="right")
    table.add_column("Coherence", justify="right", style="green")
    table.add_column("Sparks", justify="right")
    for c in stored:
        table.add_row(c.id, c.name, str(len(c.concepts)), f"{c.coherence:.3f}", str(c.spark_count))
    console.print(table)


@cli.command()
@click.argument("cluster_id")
@click.pass_context
def analyze(ctx, cluster_id):
    """Show dominant and weak concepts of a cluster."""
    services = _get_services(ctx)
    try:
        result = services.clusters.analyze_cluster(cluster_id)
    except CuriosityError as e:
        console.print(f"[red]{e}[/]")
        return

    console.print(f"\n[bold]{result.cluster_name}[/]")
    console.print(f"  Dominant: {', '.join(result.dominant_concepts)}")
    console.print(f"  Weak: {', '.join(result.weak_concepts)}")


@cli.command()
@click.pass_context
def rebalance(ctx):
    """Report clusters whose member weights vary too much."""
    services = _get_services(ctx)
    flagged = services.clusters.rebalance_clusters()
    if not flagged:
        console.print("[green]✓ All clusters balanced[/]")
        return
    for name in flagged:
        console.print(f"  [yellow]{name}: consider splitting[/]")


@cli.command()
@click.option("--top", default=5, help="Number of most connected concepts to show")
@click.pass_context
def graph(ctx, top):
    """Show concept graph statistics."""
    from .query.graph import graph_stats

    services = _get_services(ctx)
    s = graph_stats(services.graph, top=top)

    console.print("\n[bold]🧠 Concept Graph[/]")
    console.print(f"  Concepts: {s.total_concepts} (avg weight {s.avg_weight:.2f})")
    console.print(f"  Links: {s.total_links} (avg strength {s.avg_strength:.2f})")
    console.print(f"  Clusters: {s.total_clusters} (avg coherence {s.avg_coherence:.2f})")
    console.print(f"  Isolated concepts: {len(s.isolated_concepts)}")
    if s.most_connected:
        console.print("\n  [bold]Most connected:[/]")
        for concept_id, count in s.most_connected:
            node = services.graph.get_concept_by_id(concept_id)
            console.print(f"    {node.name if node else concept_id}: {count}")


@cli.command()
@click.confirmation_option(prompt="Delete all concepts, links and clusters?")
@click.pass_context
def reset(ctx):
    """Delete the whole concept graph."""
    services = _get_services(ctx)
    services.graph.reset_graph()
    console.print("[green]✓ Graph reset[/]")


@cli.command()
@click.option("--prune-clusters", is_flag=True, help="Delete clusters with fewer than two surviving members")
@click.pass_context
def janitor(ctx, prune_clusters):
    """Run maintenance: dangling links, orphan history, broken clusters."""
    from .maintenance.janitor import run_janitor

    services = _get_services(ctx)
    console.print("[blue]Running janitor...[/]")
    stats = run_janitor(services, prune_clusters=prune_clusters)

    console.print("[green]✓ Maintenance complete[/]")
    console.print(f"  Dangling links removed: {stats['dangling_links_removed']}")
    console.print(f"  Orphan history removed: {stats['orphan_history_removed']}")
    console.print(f"  Broken clusters: {stats['broken_clusters']} (removed {stats['broken_clusters_removed']})")
    console.print(f"  High-variance clusters: {stats['high_variance_clusters']}")


@cli.command()
@click.pass_context
def stats(ctx):
    """Show store statistics."""
    from .maintenance.heartbeat import engine_stats

    services = _get_services(ctx)
    s = engine_stats(services.store)

    console.print("\n[bold]📊 Store Statistics[/]")
    for kind, count in s["counts"].items():
        console.print(f"  {kind}: {count}")
    console.print(f"  Daily tags generated today: {'yes' if s['daily_today'] else 'no'}")


@cli.group()
def tags():
    """Manage the tag catalog and daily tags."""


@tags.command()
@click.pass_context
def seed(ctx):
    """Seed the default tag catalog (only when empty)."""
    services = _get_services(ctx)
    created = services.daily.initialize_default_tags()
    if created:
        console.print(f"[green]✓ Seeded {len(created)} tags[/]")
    else:
        console.print("[yellow]Tags already initialized.[/]")


@tags.command("list")
@click.option("--cluster", default=None, help="Only tags of this category")
@click.pass_context
def list_tags(ctx, cluster):
    """List tags with usage counts."""
    services = _get_services(ctx)
    rows = services.tags.get_tags_by_cluster(cluster) if cluster else services.tags.get_all_tags()

    table = Table(title="Tags")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Category")
    table.add_column("Used", justify="right", style="green")
    for t in rows:
        table.add_row(t.id, t.name, t.cluster or "-", str(t.usage_count))
    console.print(table)


@tags.command()
@click.option("--force", is_flag=True, help="Regenerate even if today's tags exist")
@click.option("--count", "-n", default=None, type=int, help="Number of tags")
@click.pass_context
def daily(ctx, force, count):
    """Show (and generate if needed) today's tags."""
    services = _get_services(ctx)
    try:
        selection = services.daily.generate_daily_tags(force=force, count=count)
    except CuriosityError as e:
        console.print(f"[red]{e}[/]")
        return

    edited = " (edited)" if selection.is_manually_edited else ""
    console.print(f"\n[bold]🏷  Tags for {selection.date}{edited}[/]")
    for tag in services.tags.get_tags_by_ids(selection.tags):
        console.print(f"  • {tag.name} [dim]({tag.cluster or '-'})[/]")


@tags.command()
@click.argument("tag_ids", nargs=-1, required=True)
@click.pass_context
def edit(ctx, tag_ids):
    """Replace today's tags with TAG_IDS."""
    services = _get_services(ctx)
    try:
        selection = services.daily.update_daily_tags(list(tag_ids))
    except CuriosityError as e:
        console.print(f"[red]{e}[/]")
        return
    console.print(f"[green]✓ Updated tags for {selection.date}[/]")


@tags.command("stats")
@click.argument("tag_id")
@click.pass_context
def tag_stats(ctx, tag_id):
    """Show weekly usage of a tag."""
    services = _get_services(ctx)
    try:
        s = services.tags.get_tag_statistics(tag_id)
    except CuriosityError as e:
        console.print(f"[red]{e}[/]")
        return

    console.print(f"\n[bold]{s.tag_name}[/] ({s.cluster or '-'})")
    console.print(f"  Total usage: {s.total_usage}")
    console.print(f"  Last 4 weeks (oldest first): {s.usage_by_week}")


@tags.command("reset-usage")
@click.confirmation_option(prompt="Reset all tag usage counts and history?")
@click.pass_context
def reset_usage(ctx):
    """Zero usage counts and clear tag history."""
    services = _get_services(ctx)
    services.daily.reset_tag_usage()
    console.print("[green]✓ Tag usage reset[/]")


if __name__ == "__main__":
    cli()
