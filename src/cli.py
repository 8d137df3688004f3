import sys
import time
import uuid
import click
import secrets
import base64
import jwt
from eth_utils import to_wei
from core.config import setting
from core.deploy import bootstrap
from core.exceptions import BaseUtilsError
import requests

def create_jwt_token():
    """Create a single-use operator token valid for TOKEN_EXPIRE_MINUTES."""
    payload = {
        "sub": "operator",
        "jti": str(uuid.uuid4()),
        "exp": int(time.time()) + setting.TOKEN_EXPIRE_MINUTES * 60
    }
    token = jwt.encode(payload, setting.JWT_SECRET_KEY, algorithm=setting.JWT_ALGORITHM)
    return token

@click.group()
def cli():
    pass

@cli.command()
@click.option('--length', default=32, help='Length of the generated JWT secret key')
def generate_jwt_secret(length):
    """Generate a secure random string suitable for a JWT secret key."""
    # Generate random bytes
    random_bytes = secrets.token_bytes(length)

    # Convert to base64 for readability and usability
    jwt_secret = base64.b64encode(random_bytes).decode('utf-8')

    print(f"JWT_SECRET_KEY={jwt_secret}")

    return jwt_secret

@cli.command()
@click.option('--deployer', type=str, default=None, help='Deployer address, defaults to DEPLOYER_ADDRESS')
@click.option('--fund', type=float, default=None, help='Genesis balance in ETH credited to the deployer')
@click.option('--output-dir', type=click.Path(file_okay=False), default=None, help='Directory for the deployment record')
@click.option('--no-persist', is_flag=True, help='Print the record without writing it')
def deploy(deployer, fund, output_dir, no_persist):
    """Deploy BaseUtils on a fresh ledger and print the deployment record."""
    settings = setting.model_copy()
    if deployer:
        settings.deployer_address = deployer
    if fund is not None:
        settings.genesis_balances = {
            **settings.genesis_balances,
            settings.deployer_address: to_wei(fund, "ether"),
        }
    if output_dir:
        settings.deployments_dir = output_dir
    settings.persist_deployment = not no_persist

    try:
        _, record = bootstrap(settings)
    except (BaseUtilsError, ValueError) as exc:
        click.echo(f"Deployment failed: {exc}", err=True)
        sys.exit(1)

    print(record.model_dump_json(indent=2))

@cli.command()
@click.option('--sender', type=str, prompt="Sender address", help='Account supplying the value')
@click.option('--recipient', 'recipients', type=str, multiple=True, required=True, help='Recipient address, repeatable')
@click.option('--amount', 'amounts', type=int, multiple=True, required=True, help='Amount in wei, repeatable')
@click.option('--value', type=int, default=None, help='Value to supply in wei, defaults to the sum of amounts')
@click.option('--server-url', default="http://localhost:8000", help='BaseUtils API url')
def disburse(sender, recipients, amounts, value, server_url):
    """Send amounts to recipients through the API in one batch."""
    response = requests.post(
        f"{server_url}/api/v1/disbursements",
        json={
            "transaction_id": str(uuid.uuid4()),
            "sender": sender,
            "recipients": list(recipients),
            "amounts": list(amounts),
            "value": sum(amounts) if value is None else value,
        },
        headers={"Authorization": f"Bearer {create_jwt_token()}"},
    )
    print(response.json())

@cli.command()
@click.option('--sender', type=str, prompt="Sender address", help='Account sending the value')
@click.option('--amount', type=int, prompt="Amount in wei", help='Amount in wei')
@click.option('--server-url', default="http://localhost:8000", help='BaseUtils API url')
def deposit(sender, amount, server_url):
    """Send value straight to the BaseUtils account."""
    response = requests.post(
        f"{server_url}/api/v1/deposits",
        json={"transaction_id": str(uuid.uuid4()), "sender": sender, "amount": amount},
        headers={"Authorization": f"Bearer {create_jwt_token()}"},
    )
    print(response.json())

@cli.command()
@click.option('--server-url', default="http://localhost:8000", help='BaseUtils API url')
def network_info(server_url):
    """Show chain id, bridge and current block of the deployed BaseUtils."""
    response = requests.get(f"{server_url}/api/v1/network")
    response.raise_for_status()
    print(response.json())

if __name__ == "__main__":
    cli()
