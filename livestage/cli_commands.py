"""
Flask CLI commands.

Commands:
- flask init-db: Create all tables
- flask create-brand: Create a brand
- flask create-preset: Add a message preset to a brand
"""

import click
from livestage.database import db_session, create_all
from livestage.exceptions import LivestageError
from livestage.models import MessageColor, DEFAULT_MESSAGE_COLOR
from livestage.services.catalog_service import create_brand, get_brand_by_slug
from livestage.services.message_preset_service import create_message_preset


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create database tables that do not exist yet."""
        create_all()
        click.echo(click.style('✅ Database tables created.', fg='green'))

    @app.cli.command('create-brand')
    @click.option('--name', prompt=True, help='Brand display name')
    @click.option('--slug', prompt=True, help='URL identifier, e.g. acme-jewelry')
    def create_brand_command(name, slug):
        """Create a brand; its screens live under /b/<slug>/."""
        try:
            brand = create_brand(db_session, name, slug)
        except LivestageError as e:
            click.echo(click.style(f'❌ {e.message}', fg='red'))
            raise SystemExit(1)

        click.echo(click.style('\n✅ Brand created!', fg='green', bold=True))
        click.echo(f'   Name: {brand.name}')
        click.echo(f'   ID: {brand.id}')
        click.echo(f'\n💡 Product sets: /b/{brand.slug}/product-sets')

    @app.cli.command('create-preset')
    @click.option('--brand', 'brand_slug', required=True, help='Brand slug')
    @click.option('--text', 'message_text', prompt=True, help='Message shown to the host')
    @click.option('--color', type=click.Choice(MessageColor.values()), default=DEFAULT_MESSAGE_COLOR, show_default=True)
    def create_preset_command(brand_slug, message_text, color):
        """Add a canned host message to a brand."""
        try:
            brand = get_brand_by_slug(db_session, brand_slug)
            preset = create_message_preset(db_session, brand.id, {'message_text': message_text, 'color': color})
        except LivestageError as e:
            db_session.rollback()
            click.echo(click.style(f'❌ {e.message}', fg='red'))
            raise SystemExit(1)

        click.echo(click.style(f'✅ Preset #{preset.id} created at position {preset.position}.', fg='green'))
