# upload_gateway/__main__.py

import logging
import os
from typing import Optional

import typer
from pulumi import automation as auto
from pulumi.automation import LocalWorkspaceOptions, ProjectBackend, ProjectSettings

from upload_gateway.config import API_CONFIG, get_gateway_settings
from upload_gateway.stack import pulumi_program

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = typer.Typer(
    name="upload-gateway",
    help="Deploy the direct-to-S3 upload API with the Pulumi Automation API",
    no_args_is_help=True
)

PRESET_OPTION = typer.Option(
    None,
    "--preset",
    "-p",
    help="Gateway preset (defaults to GATEWAY_PRESET or the configured default)"
)


def select_or_create_stack(settings):
    """
    Select the stack if it exists, otherwise create it.
    Uses the S3 state backend when PULUMI_STATE_BUCKET is set.
    """
    api_name = settings["api_name"]
    stack_name = f"{api_name}-stack"
    project_name = f"{api_name}-infra"
    states_bucket = os.getenv("PULUMI_STATE_BUCKET")

    project_settings = ProjectSettings(
        name=project_name,
        runtime="python"
    )

    if states_bucket:
        project_settings.backend = ProjectBackend(states_bucket)
        logger.info(f"Using S3 bucket '{states_bucket}' for Pulumi state")
    else:
        logger.warning("PULUMI_STATE_BUCKET not set. Using local Pulumi state storage.")

    env_vars = {
        "AWS_REGION": settings["region"],
        "API_NAME": api_name,
        "BUCKET_NAME": settings["bucket_name"],
        "GATEWAY_PRESET": settings["preset"],
        "PULUMI_CONFIG_PASSPHRASE": os.getenv("PULUMI_CONFIG_PASSPHRASE", "")
    }

    ws_opts = LocalWorkspaceOptions(
        project_settings=project_settings,
        env_vars=env_vars
    )

    def program():
        pulumi_program(settings)

    logger.info(f"Creating or selecting the Pulumi stack '{stack_name}'...")
    try:
        stack = auto.select_stack(
            stack_name=stack_name,
            project_name=project_name,
            program=program,
            opts=ws_opts
        )
        logger.info(f"Selected existing stack '{stack_name}'")
    except auto.StackNotFoundError:
        stack = auto.create_stack(
            stack_name=stack_name,
            project_name=project_name,
            program=program,
            opts=ws_opts
        )
        logger.info(f"Created new stack '{stack_name}'")
    return stack


def deploy_infra(action="up", preset=None):
    """
    Run a Pulumi action against the upload gateway stack.

    Args:
        action: "up", "preview" or "destroy"
        preset: Gateway preset name, see config.GATEWAY_PRESETS

    Returns:
        The Automation API result of the action
    """
    settings = get_gateway_settings(preset)
    logger.info(f"Using gateway preset '{settings['preset']}' for bucket '{settings['bucket_name']}'")

    try:
        stack = select_or_create_stack(settings)

        logger.info(f"Configuring AWS region '{settings['region']}' for the stack...")
        stack.set_config("aws:region", auto.ConfigValue(value=settings["region"]))

        logger.info("Installing AWS plugin...")
        stack.workspace.install_plugin("aws", API_CONFIG["aws_plugin_version"])

        if action == "preview":
            logger.info("Previewing infrastructure changes...")
            return stack.preview(on_output=print)

        if action == "destroy":
            logger.info("Destroying infrastructure...")
            result = stack.destroy(on_output=print)
            logger.info("Destroy complete!")
            return result

        logger.info("Deploying infrastructure...")
        up_res = stack.up(on_output=print)

        logger.info("Deployment complete!")
        if "api_url" in up_res.outputs:
            logger.info(f"API URL: {up_res.outputs['api_url'].value}")
        else:
            logger.warning("API URL not found in outputs")
        if "api_key_id" in up_res.outputs:
            logger.info(f"API key id: {up_res.outputs['api_key_id'].value}")

        return up_res

    except Exception as e:
        logger.error(f"Pulumi {action} failed: {str(e)}")
        raise


def _run(action, preset):
    try:
        deploy_infra(action, preset)
    except Exception as e:
        logger.error(f"Infrastructure {action} failed: {str(e)}")
        # Exit with error code for CI/CD pipeline to detect failure
        raise typer.Exit(1) from e


@app.command()
def up(preset: Optional[str] = PRESET_OPTION):
    """Create or update the gateway."""
    _run("up", preset)


@app.command()
def preview(preset: Optional[str] = PRESET_OPTION):
    """Show the changes an update would make."""
    _run("preview", preset)


@app.command()
def destroy(preset: Optional[str] = PRESET_OPTION):
    """Tear the gateway down."""
    _run("destroy", preset)


# Main entry point
if __name__ == "__main__":
    app()
