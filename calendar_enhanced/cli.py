import json

import click
from flask import current_app
from flask.cli import AppGroup, with_appcontext

from calendar_enhanced.extensions import db


def _mapper():
    return current_app.extensions['calendar_enhanced.mapper']


@click.command('init-db')
@with_appcontext
def init_db_command() -> None:
    """Create the settings table (non-destructive)."""
    db.create_all()
    click.echo('Database tables created.')


mappings_cli = AppGroup('mappings', help='Inspect and edit category mappings.')


@mappings_cli.command('list')
@click.option('--json', 'as_json', is_flag=True, help='Print the stored table as JSON.')
def list_mappings_command(as_json: bool) -> None:
    """List category mappings in display order."""
    mapper = _mapper()
    table = mapper.get_mappings()
    if as_json:
        click.echo(json.dumps({
            'category_mappings': table.to_stored(),
            'general_fallback': mapper.get_general_fallback(),
            'data_version': mapper.get_data_version(),
        }, indent=2))
        return
    if not table:
        click.echo('No category mappings.')
    for entry in table:
        click.echo(f"{entry.category}\timage={entry.image_ref or '-'}\tcolor={entry.color or '-'}")
    fallback = mapper.get_general_fallback()
    click.echo(f"General fallback: {fallback or '(bundled default)'}")


@mappings_cli.command('set')
@click.argument('category')
@click.option('--image', 'image_ref', default='', help='Image reference (static path or URL).')
@click.option('--color', default='', help='Hex color, e.g. #3366ff.')
def set_mapping_command(category: str, image_ref: str, color: str) -> None:
    """Add or replace the mapping for CATEGORY."""
    if not _mapper().add_mapping(category, image_ref, color):
        raise click.ClickException('A category name and an image or a valid color are required.')
    click.echo(f"Saved mapping for '{category.strip()}'.")


@mappings_cli.command('remove')
@click.argument('category')
def remove_mapping_command(category: str) -> None:
    """Remove the mapping for CATEGORY."""
    if not _mapper().remove_mapping(category):
        raise click.ClickException(f"No mapping for '{category}'.")
    click.echo(f"Removed mapping for '{category}'.")


@mappings_cli.command('fallback')
@click.argument('image_ref', required=False, default='')
def fallback_command(image_ref: str) -> None:
    """Set the general fallback image (empty to clear)."""
    if not _mapper().save_general_fallback(image_ref):
        raise click.ClickException('Unable to save the general fallback image.')
    click.echo(f"General fallback set to '{image_ref}'." if image_ref else 'General fallback cleared.')


@mappings_cli.command('upgrade')
def upgrade_command() -> None:
    """Rewrite legacy mappings in the current stored format."""
    if _mapper().maybe_upgrade_data():
        click.echo('Mappings upgraded.')
    else:
        click.echo('Mappings already up to date.')


def register_cli_commands(app):
    app.cli.add_command(init_db_command)
    app.cli.add_command(mappings_cli)
