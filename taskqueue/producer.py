"""Producer CLI: submit tasks to the coordinator and inspect them."""

import json
import logging
from typing import Optional

import click
import httpx

from taskqueue import __version__
from taskqueue.errors import DuplicateTaskId, TaskNotFound, TransientDependencyError
from taskqueue.models.task import TaskStatus
from taskqueue.services.coordinator_client import CoordinatorClient
from taskqueue.services.task_processor import BUILTIN_HANDLERS

logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

TASK_TYPES = [handler.task_type for handler in BUILTIN_HANDLERS]


@click.group()
@click.version_option(version=__version__, prog_name="taskqueue-produce")
@click.option("--coordinator-url", default=None, help="Coordinator base URL (defaults to COORDINATOR_URL).")
@click.option("--token", default=None, help="API token (defaults to COORDINATOR_API_TOKEN).")
@click.pass_context
def cli(ctx: click.Context, coordinator_url: Optional[str], token: Optional[str]) -> None:
    """Submit and inspect tasks."""
    ctx.obj = CoordinatorClient(base_url=coordinator_url, api_token=token)


@cli.command("submit")
@click.option(
    "--type",
    "task_type",
    default="Default",
    show_default=True,
    help=f"Task type; known types: {', '.join(TASK_TYPES)}. Others run the default handler.",
)
@click.option("--priority", type=click.IntRange(min=0, max=10), default=0, show_default=True)
@click.option("--payload", default="{}", show_default=True, help="Payload, JSON or plain text.")
@click.option("--task-id", default=None, help="Explicit task id; generated when omitted.")
@click.option("--max-retries", type=click.IntRange(min=0), default=None)
@click.option("--count", type=click.IntRange(min=1), default=1, show_default=True, help="Number of copies to submit.")
@click.pass_obj
def submit(
    client: CoordinatorClient,
    task_type: str,
    priority: int,
    payload: str,
    task_id: Optional[str],
    max_retries: Optional[int],
    count: int,
) -> None:
    """Submit tasks to the queue."""
    if task_id and count > 1:
        raise click.UsageError("--task-id cannot be combined with --count")

    for _ in range(count):
        try:
            task = client.submit_task(
                payload=payload,
                task_type=task_type,
                priority=priority,
                task_id=task_id,
                max_retries=max_retries,
            )
        except DuplicateTaskId as e:
            raise click.ClickException(str(e))
        except (TransientDependencyError, httpx.HTTPStatusError) as e:
            raise click.ClickException(f"Error submitting task: {e}")

        click.echo(f"Task {task['task_id']} submitted (entry: {task.get('stream_entry_id')})")


@cli.command("show")
@click.argument("task_id")
@click.pass_obj
def show(client: CoordinatorClient, task_id: str) -> None:
    """Show one task as JSON."""
    try:
        task = client.get_task(task_id)
    except TaskNotFound as e:
        raise click.ClickException(str(e))
    except (TransientDependencyError, httpx.HTTPStatusError) as e:
        raise click.ClickException(f"Error fetching task: {e}")

    click.echo(json.dumps(task, indent=2))


@cli.command("list")
@click.option("--status", type=click.Choice([s.value for s in TaskStatus]), default=None)
@click.option("--limit", type=click.IntRange(min=1, max=1000), default=20, show_default=True)
@click.pass_obj
def list_tasks(client: CoordinatorClient, status: Optional[str], limit: int) -> None:
    """List recent tasks."""
    try:
        tasks = client.list_tasks(status=status, limit=limit)
    except (TransientDependencyError, httpx.HTTPStatusError) as e:
        raise click.ClickException(f"Error listing tasks: {e}")

    for task in tasks:
        click.echo(
            f"{task['task_id']}  {task['status']:<10}  {task['task_type']:<14}  "
            f"retries={task['retry_count']}/{task['max_retries']}  worker={task.get('worker_id') or '-'}"
        )


@cli.command("workers")
@click.pass_obj
def list_workers(client: CoordinatorClient) -> None:
    """List live workers."""
    try:
        workers = client.get_active_workers()
    except (TransientDependencyError, httpx.HTTPStatusError) as e:
        raise click.ClickException(f"Error listing workers: {e}")

    for worker in workers:
        address = f"{worker.get('host_address') or '-'}:{worker['port']}"
        click.echo(
            f"{worker['worker_id']}  {address:<21}  last_heartbeat={worker.get('last_heartbeat')}  "
            f"processed={worker['tasks_processed']}  failed={worker['tasks_failed']}"
        )


def main():
    cli()


if __name__ == "__main__":
    main()
