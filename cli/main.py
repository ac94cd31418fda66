"""
Command-line interface for tagcrawl
"""

import click
import logging
import sys
import threading
from pathlib import Path
from tqdm import tqdm

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from cma.client import ContentManagementClient
from crawl.apply import TagApplier
from crawl.config import TagMatchMode, load_crawl_config, load_space_context, merge_excluded
from crawl.inventory import Inventory
from crawl.progress import ProgressChannel
from crawl.scan import Scanner
from crawl.tags import TagNameCache, resolve_tags, describe_targets

logger = logging.getLogger(__name__)


@click.group()
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.option('--space', help='Space id (default: CONTENTFUL_SPACE_ID)')
@click.option('--environment', help='Environment id (default: CONTENTFUL_ENVIRONMENT_ID or master)')
@click.option('--locale', help='Preferred locale for titles and fields')
@click.pass_context
def cli(ctx, debug, space, environment, locale):
    """Find content linked from a page or location and add the location's tags to it"""

    if debug:
        logging.getLogger().setLevel(logging.DEBUG)

    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug
    ctx.obj['space'] = space
    ctx.obj['environment'] = environment
    ctx.obj['locale'] = locale


def _build_client(ctx) -> ContentManagementClient:
    space = load_space_context(ctx.obj.get('space'), ctx.obj.get('environment'), ctx.obj.get('locale'))
    return ContentManagementClient(space)


def _run_with_progress(target, channel: ProgressChannel, cancel_event: threading.Event):
    """
    Run target in a worker thread while rendering progress events

    Status events are echoed; counted events drive one tqdm bar per phase.
    Ctrl-C sets cancel_event and waits for the worker to wind down.
    """
    outcome = {}

    def runner():
        try:
            outcome['result'] = target()
        except Exception as e:
            outcome['error'] = e

    thread = threading.Thread(target=runner, name='tagcrawl-main', daemon=True)
    thread.start()

    bars = {}

    def render(event):
        if event.phase == 'status':
            tqdm.write(f"ℹ️  {event.message}")
            return
        bar = bars.get(event.phase)
        if bar is None:
            bar = tqdm(total=event.total, desc=event.phase, unit='item', leave=True)
            bars[event.phase] = bar
        bar.total = max(event.total, event.processed)
        bar.n = event.processed
        bar.refresh()

    try:
        while thread.is_alive():
            event = channel.get(timeout=0.2)
            if event is not None:
                render(event)
    except KeyboardInterrupt:
        click.echo("\n⏹️  Cancelling, waiting for in-flight requests…", err=True)
        cancel_event.set()
        thread.join()

    for event in channel.drain():
        render(event)
    for bar in bars.values():
        bar.close()

    if 'error' in outcome:
        raise outcome['error']
    return outcome.get('result')


def _echo_counts(inventory: Inventory):
    counts = inventory.counts()
    for label, key in (('Content', 'entries'), ('Media', 'assets')):
        c = counts[key]
        click.echo(f"   {label}: {c['total']:,} found, {c['actionable']:,} to tag, "
                   f"{c['already_ok']:,} already ok, {c['excluded']:,} excluded, "
                   f"{c['unreachable']:,} unreachable")


@cli.command()
@click.argument('entry_id')
@click.option('--output', '-o', help='Write the inventory to this JSON file')
@click.option('--max-depth', '-d', type=int, help='Maximum traversal depth')
@click.option('--concurrency', '-c', type=int, help='Parallel requests while crawling')
@click.option('--no-assets', is_flag=True, help='Do not collect linked media')
@click.option('--exclude', '-x', multiple=True, help='Extra content type to exclude (repeatable)')
@click.option('--tag-mode', type=click.Choice(['name', 'id']), help='Interpret location tags as names or ids')
@click.option('--verbose', '-v', is_flag=True, help='List every row')
@click.pass_context
def scan(ctx, entry_id, output, max_depth, concurrency, no_assets, exclude, tag_mode, verbose):
    """Scan the content linked from ENTRY_ID (a page or a location)"""

    try:
        config = load_crawl_config(
            max_depth=max_depth,
            concurrency=concurrency,
            include_media=False if no_assets else None,
            tag_match_mode=TagMatchMode.parse(tag_mode) if tag_mode else None
        )
        config = merge_excluded(config, exclude)

        client = _build_client(ctx)
        channel = ProgressChannel()
        cancel_event = threading.Event()
        scanner = Scanner(client, config, client.space.locale, progress=channel, cancel_event=cancel_event)

        click.echo(f"🔍 Scanning from entry {entry_id} (max depth {config.max_depth}, "
                   f"concurrency {config.concurrency})")

        result = _run_with_progress(lambda: scanner.scan(entry_id), channel, cancel_event)

        if result.context.warning:
            click.echo(f"⚠️  {result.context.warning}")
        if result.resolution.missing:
            click.echo(f"⚠️  Tag names not found (ignored): {', '.join(result.resolution.missing)}")

        if not result.completed:
            click.echo(f"❌ {result.status}")
            return

        inventory = result.inventory
        click.echo(f"\n✅ {result.status}")
        click.echo(f"🏷️  Tags to add: {', '.join(t['name'] for t in inventory.target_tags)}")
        click.echo(f"🌱 Roots: {result.roots.count:,}")
        for content_type, count in result.roots.per_content_type.items():
            click.echo(f"   {content_type}: {count:,}")
        _echo_counts(inventory)

        if inventory.cancelled:
            click.echo("⚠️  Scan was cancelled; the inventory is incomplete")

        if verbose:
            for row in inventory.entry_rows():
                marker = '⛔' if row.excluded else ('➕' if row.actionable else '✔️')
                click.echo(f"   {marker} [{row.content_type}] {row.title} ({row.id})")
            for row in inventory.asset_rows():
                marker = '➕' if row.actionable else '✔️'
                click.echo(f"   {marker} [asset] {row.title} ({row.id})")

        if not inventory.has_anything_to_apply:
            click.echo("\n👍 All linked content and media already have the required tag(s).")

        if output:
            inventory.save(output)
            click.echo(f"💾 Inventory written to {output}")

    except Exception as e:
        click.echo(f"❌ Scan failed: {e}", err=True)
        if ctx.obj['debug']:
            raise
        sys.exit(1)


@cli.command()
@click.argument('inventory_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--only', multiple=True, help='Apply only to these entry/asset ids (repeatable)')
@click.option('--no-preserve-publish', is_flag=True, help='Do not republish items that were published')
@click.option('--yes', '-y', is_flag=True, help='Do not ask for confirmation')
@click.pass_context
def apply(ctx, inventory_file, only, no_preserve_publish, yes):
    """Add the target tags to the items of a saved INVENTORY_FILE"""

    try:
        inventory = Inventory.load(inventory_file)
        config = load_crawl_config()
        preserve = config.preserve_publish_state and not no_preserve_publish

        if only:
            entry_ids = [i for i in only if i in inventory.entries]
            asset_ids = [i for i in only if i in inventory.assets]
            unknown = [i for i in only if i not in inventory.entries and i not in inventory.assets]
            if unknown:
                click.echo(f"⚠️  Not in inventory (ignored): {', '.join(unknown)}")
        else:
            entry_ids = inventory.actionable_entry_ids()
            asset_ids = inventory.actionable_asset_ids()

        click.echo(f"🏷️  Tags to add: {', '.join(t['name'] for t in inventory.target_tags) or ', '.join(inventory.target_tag_ids)}")
        click.echo(f"📋 Selected: {len(entry_ids):,} content, {len(asset_ids):,} media")
        click.echo(f"📢 Preserve publish state: {'yes' if preserve else 'no'}")

        if not yes and not click.confirm("Apply tags?"):
            return

        client = _build_client(ctx)
        channel = ProgressChannel()
        cancel_event = threading.Event()
        applier = TagApplier(client, progress=channel, cancel_event=cancel_event)

        summary = _run_with_progress(
            lambda: applier.apply(inventory, entry_ids, asset_ids, inventory.target_tag_ids, preserve),
            channel, cancel_event
        )

        for label, tally in (('Content', summary.entries), ('Media', summary.assets)):
            click.echo(f"{label}: updated {tally.updated}/{tally.selected}, republished {tally.republished}, "
                       f"skipped (excluded {tally.skipped_excluded}, already ok {tally.skipped_already_ok}), "
                       f"failed {tally.failed}.")

        if summary.cancelled:
            click.echo("⚠️  Apply was cancelled before all items were processed")
        if summary.total_failed:
            click.echo(f"❌ Tags applied with {summary.total_failed} error(s): {', '.join(summary.failed_ids)}")
        else:
            click.echo("✅ Tags were applied successfully.")

    except Exception as e:
        click.echo(f"❌ Apply failed: {e}", err=True)
        if ctx.obj['debug']:
            raise
        sys.exit(1)


@cli.command()
@click.argument('names', nargs=-1, required=True)
@click.option('--tag-mode', type=click.Choice(['name', 'id']), help='Interpret arguments as names or ids')
@click.pass_context
def tags(ctx, names, tag_mode):
    """Resolve tag NAMES to tag ids"""

    try:
        config = load_crawl_config(tag_match_mode=TagMatchMode.parse(tag_mode) if tag_mode else None)
        client = _build_client(ctx)
        cache = TagNameCache(client)

        resolution = resolve_tags(config.tag_match_mode, names, cache)
        for tag in describe_targets(config.tag_match_mode, resolution, cache):
            click.echo(f"✅ {tag['name']} → {tag['id']}")
        for name in resolution.missing:
            click.echo(f"❌ {name} → not found")

    except Exception as e:
        click.echo(f"❌ Tag lookup failed: {e}", err=True)
        if ctx.obj['debug']:
            raise
        sys.exit(1)


def main():
    """Main entry point"""
    cli()


if __name__ == '__main__':
    main()
