"""
CLI interface for humboi.

Bootstraps the inventory sample database and queries it.

    humboi init            write a default config.yaml
    humboi bootstrap       create the sample database if necessary
    humboi schema          print the user schema
    humboi items --type X  print items of a type
    humboi demo            bootstrap, then print schema and shirts
"""

import sys

import click
import yaml

from humboi import __version__


def _load(ctx):
    """Return (config, registry) or exit when config is missing."""
    from humboi.bootstrap import SetupRegistry

    if "config" not in ctx.obj:
        click.echo(f"✗ Config not loaded: {ctx.obj.get('config_error', 'Unknown error')}", err=True)
        click.echo("Run 'humboi init' to create a configuration file.", err=True)
        raise SystemExit(1)

    config = ctx.obj["config"]
    return config, SetupRegistry.create_default(config.database_name)


def _snapshot(config):
    """Connect and read the current snapshot, both retried."""
    from humboi.connection import get_client, get_connection
    from humboi.retry import with_retry

    conn = get_connection(config.database_name, client=get_client(config))
    return with_retry(conn.db)


@click.group(invoke_without_command=False)
@click.version_option(version=__version__, prog_name="humboi")
@click.option("--log-level", default=None, help="Override configured log level")
@click.pass_context
def main(ctx, log_level):
    """
    humboi - resilient bootstrap of a sample inventory database.
    """
    from humboi.config import load_config
    from humboi.utils import setup_logging

    ctx.ensure_object(dict)
    try:
        config = load_config()
        ctx.obj["config"] = config
        setup_logging(log_level or config.log_level, config.log_format)
    except Exception as e:
        # init does not need a config; other commands check ctx.obj
        ctx.obj["config_error"] = str(e)
        setup_logging(log_level or "INFO")


@main.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force: bool):
    """Initialize humboi configuration."""
    from humboi.config import default_config_dict, get_humboi_home

    home = get_humboi_home()
    if not home.exists():
        home.mkdir(parents=True)

    cfg_path = home / "config.yaml"
    if cfg_path.exists() and not force:
        click.echo(f"Config already exists at {cfg_path}. Use --force to overwrite.", err=True)
        raise SystemExit(1)

    cfg_path.write_text(yaml.safe_dump(default_config_dict(home), sort_keys=False))

    env_path = home / ".env"
    if not env_path.exists():
        env_path.write_text("# GOOGLE_APPLICATION_CREDENTIALS=...\n# GCP_PROJECT=...\n")

    click.echo(f"Initialized humboi config at {cfg_path}")


@main.command("bootstrap")
@click.option("--dataset", default=None, help="Database to bootstrap (default: configured database_name)")
@click.pass_context
def bootstrap(ctx, dataset):
    """Create the sample database and load its data if necessary."""
    from humboi.bootstrap import ensure_dataset
    from humboi.connection import get_client

    config, registry = _load(ctx)
    name = dataset or config.database_name
    try:
        status = ensure_dataset(name, registry, client=get_client(config))
    except Exception as e:
        click.echo(f"✗ {name} bootstrap failed: {e}", err=True)
        raise SystemExit(1)
    click.echo(f"✓ {name}: {status.value}")


@main.command("schema")
@click.pass_context
def schema(ctx):
    """Print the user schema."""
    from humboi.inventory import get_schema
    from humboi.utils import print_data
    from humboi.retry import with_retry

    config, _ = _load(ctx)
    try:
        db = _snapshot(config)
        print_data(with_retry(lambda: get_schema(db)))
    except Exception as e:
        click.echo(f"✗ {e}", err=True)
        raise SystemExit(1)


@main.command("items")
@click.option("--type", "type_", default="shirt", show_default=True, help="Item type")
@click.option("--pull", "attrs", multiple=True, help="Attribute to pull (repeatable, default: all)")
@click.pass_context
def items(ctx, type_, attrs):
    """Print items of a type."""
    from humboi.inventory import get_items_by_type
    from humboi.utils import print_data
    from humboi.retry import with_retry

    config, _ = _load(ctx)
    try:
        db = _snapshot(config)
        print_data(with_retry(lambda: get_items_by_type(db, type_, attrs or ("*",))))
    except Exception as e:
        click.echo(f"✗ {e}", err=True)
        raise SystemExit(1)


@main.command("demo")
@click.pass_context
def demo(ctx):
    """Bootstrap the sample database, then print its schema and shirts."""
    from humboi.bootstrap import ensure_dataset
    from humboi.connection import get_client
    from humboi.inventory import get_items_by_type, get_schema
    from humboi.retry import with_retry
    from humboi.utils import print_data

    config, registry = _load(ctx)
    try:
        ensure_dataset(config.database_name, registry, client=get_client(config))
        db = _snapshot(config)
        print_data(with_retry(lambda: get_schema(db)))
        print_data(with_retry(lambda: get_items_by_type(db, "shirt")))
    except Exception as e:
        click.echo(f"✗ {e}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    sys.exit(main())
