# Overview: Flask CLI command groups for account setup, stock-in, request decisions and POS sync.

# backend/tierstock/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Accounts:
# - python -m flask accounts create --code HQ --name "Headquarters" --role hq
# - python -m flask accounts create --code BR1 --name "Branch 1" --role branch --sub-role premium --parent-id 1
# - python -m flask accounts list [--role agent] [--all]
# - python -m flask accounts delete 7
#   Deletes an account without history, deactivates one with history; refused while it holds stock.
#
# Products:
# - python -m flask products create --sku ZP250 --name "Zaitun 250ml" --price agent=2500 --price customer=3900
# - python -m flask products price 3 master_agent 2100
#
# Stock:
# - python -m flask stock receive --account-id 1 --product-id 3 --quantity 500 --note "Batch 42"
# - python -m flask stock transfer --from-id 4 --to-id 7 --product-id 3 --quantity 20
# - python -m flask stock balance --account-id 1
#
# Requests:
# - python -m flask requests approve 12 [--actor-id 2]
# - python -m flask requests reject 12 --reason "Out of season"
#
# Point of sale:
# - python -m flask pos sync --account-id 5 --date 2024-06-01

import click
from flask.cli import with_appcontext

from .errors import TierStockError
from .models import AccountRole, BranchTier, PriceTier
from .services import account_service, import_service, ledger_service, request_service, transfer_service
from .time_utils import parse_iso_date


def _fail(exc: TierStockError):
    raise click.ClickException(f"{type(exc).__name__}: {exc.message}")


def _parse_prices(values) -> dict:
    prices = {}
    for raw in values:
        tier, sep, cents = raw.partition("=")
        if not sep:
            raise click.BadParameter(f"expected tier=cents, got {raw!r}", param_hint="--price")
        try:
            prices[PriceTier(tier.strip())] = int(cents)
        except ValueError as exc:
            raise click.BadParameter(str(exc), param_hint="--price") from exc
    return prices


@click.group('accounts')
def accounts_group():
    """Account administration."""


@accounts_group.command('create')
@click.option('--code', required=True, help='Unique account code')
@click.option('--name', required=True)
@click.option('--role', required=True, type=click.Choice([r.value for r in AccountRole]))
@click.option('--sub-role', type=click.Choice([t.value for t in BranchTier]), default=None, help='Branch pricing tier')
@click.option('--parent-id', type=int, default=None, help='Upstream account id')
@with_appcontext
def create_account_cmd(code, name, role, sub_role, parent_id):
    """Create an account."""
    try:
        account = account_service.create_account(
            code=code, name=name, role=role, sub_role=sub_role, parent_account_id=parent_id,
        )
    except TierStockError as e:
        _fail(e)
    click.echo(f"PASS Created account {account.code} (ID: {account.id}, role: {account.role.value})")


@accounts_group.command('list')
@click.option('--role', type=click.Choice([r.value for r in AccountRole]), default=None)
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive accounts')
@with_appcontext
def list_accounts_cmd(role, include_inactive):
    """List accounts."""
    accounts = account_service.list_accounts(role=role, include_inactive=include_inactive)
    if not accounts:
        click.echo("No accounts found.")
        return
    for a in accounts:
        status = "active" if a.is_active else "inactive"
        sub = f"/{a.sub_role.value}" if a.sub_role else ""
        click.echo(f"{a.id:>5}  {a.code:<12} {a.role.value}{sub:<10} {status:<8} {a.name}")


@accounts_group.command('delete')
@click.argument('account_id', type=int)
@with_appcontext
def delete_account_cmd(account_id):
    """Delete (or deactivate) an account that holds no stock."""
    try:
        deleted = account_service.delete_account(account_id)
    except TierStockError as e:
        _fail(e)
    if deleted:
        click.echo(f"PASS Deleted account {account_id}")
    else:
        click.echo(f"WARN  Account {account_id} has history; deactivated instead of deleted")


@click.group('products')
def products_group():
    """Product catalogue and tier prices."""


@products_group.command('create')
@click.option('--sku', required=True)
@click.option('--name', required=True)
@click.option('--description', default=None)
@click.option('--price', 'prices', multiple=True, help='tier=cents, repeatable')
@with_appcontext
def create_product_cmd(sku, name, description, prices):
    """Create a product."""
    try:
        product = account_service.create_product(
            sku=sku, name=name, description=description, prices=_parse_prices(prices),
        )
    except TierStockError as e:
        _fail(e)
    click.echo(f"PASS Created product {product.sku} (ID: {product.id})")


@products_group.command('price')
@click.argument('product_id', type=int)
@click.argument('tier', type=click.Choice([t.value for t in PriceTier]))
@click.argument('price_cents', type=int)
@with_appcontext
def set_price_cmd(product_id, tier, price_cents):
    """Set one tier price (in cents)."""
    try:
        product = account_service.set_product_price(product_id, tier, price_cents)
    except TierStockError as e:
        _fail(e)
    click.echo(f"PASS {product.sku} {tier} = {price_cents}")


@click.group('stock')
def stock_group():
    """Stock-in and balance inspection."""


@stock_group.command('receive')
@click.option('--account-id', type=int, required=True)
@click.option('--product-id', type=int, required=True)
@click.option('--quantity', type=int, required=True)
@click.option('--note', default=None)
@with_appcontext
def receive_cmd(account_id, product_id, quantity, note):
    """Credit stock from production (HQ stock-in)."""
    try:
        result = transfer_service.receive_stock(account_id, product_id, quantity, note=note)
    except TierStockError as e:
        _fail(e)
    click.echo(f"PASS Received {quantity}; account {account_id} now holds {result.to_balance}")


@stock_group.command('transfer')
@click.option('--from-id', 'from_id', type=int, required=True, help='Sending (upstream) account id')
@click.option('--to-id', 'to_id', type=int, required=True, help='Receiving (downstream) account id')
@click.option('--product-id', type=int, required=True)
@click.option('--quantity', type=int, required=True)
@click.option('--note', default=None)
@with_appcontext
def stock_out_cmd(from_id, to_id, product_id, quantity, note):
    """Send stock straight to a downstream account."""
    try:
        result = transfer_service.stock_out(from_id, to_id, product_id, quantity, note=note)
    except TierStockError as e:
        _fail(e)
    click.echo(
        f"PASS Sent {quantity}; account {from_id} now holds {result.from_balance}, "
        f"account {to_id} holds {result.to_balance}"
    )


@stock_group.command('balance')
@click.option('--account-id', type=int, required=True)
@click.option('--all', 'include_zero', is_flag=True, help='Include zero balances')
@with_appcontext
def balance_cmd(account_id, include_zero):
    """Show an account's balances."""
    balances = ledger_service.list_balances(account_id, include_zero=include_zero)
    if not balances:
        click.echo("No stock.")
        return
    for b in balances:
        click.echo(f"product {b.product_id:>5}: {b.quantity}")


@click.group('requests')
def requests_group():
    """Stock request decisions."""


@requests_group.command('approve')
@click.argument('request_id', type=int)
@click.option('--actor-id', type=int, default=None, help='Fulfilling account id')
@with_appcontext
def approve_cmd(request_id, actor_id):
    """Approve a pending request (moves the stock)."""
    try:
        req = request_service.approve_request(request_id, actor_account_id=actor_id)
    except TierStockError as e:
        _fail(e)
    click.echo(f"PASS {req.request_number} approved")


@requests_group.command('reject')
@click.argument('request_id', type=int)
@click.option('--reason', required=True)
@click.option('--actor-id', type=int, default=None)
@with_appcontext
def reject_cmd(request_id, reason, actor_id):
    """Reject a pending request."""
    try:
        req = request_service.reject_request(request_id, reason, actor_account_id=actor_id)
    except TierStockError as e:
        _fail(e)
    click.echo(f"PASS {req.request_number} rejected")


@click.group('pos')
def pos_group():
    """Point-of-sale synchronisation."""


@pos_group.command('sync')
@click.option('--account-id', type=int, required=True, help='Seller account id')
@click.option('--date', 'day', required=True, help='Local date, YYYY-MM-DD')
@with_appcontext
def pos_sync_cmd(account_id, day):
    """Import one day of POS transactions. Safe to re-run."""
    try:
        parsed = parse_iso_date(day)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--date") from exc
    try:
        summary = import_service.sync_from_pos(account_id, parsed)
    except TierStockError as e:
        _fail(e)
    click.echo(
        f"PASS imported={summary.imported} duplicate={summary.skipped_duplicate} "
        f"cancelled={summary.skipped_cancelled} excluded={summary.skipped_excluded}"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(accounts_group)
    app.cli.add_command(products_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(requests_group)
    app.cli.add_command(pos_group)
