import logging
import sys

import click

from . import make_sqs_client
from .errors import QueueShiftError
from .filter import parse_filter
from .queue import (
    DEFAULT_VISIBILITY_TIMEOUT,
    DEFAULT_WAIT_TIME,
    QueueClientError,
    SqsQueueClient,
)
from .transfer import FilterPolicy, MessageTransfer


def _parse_filter_option(ctx, param, value):
    if value is None:
        return None
    try:
        return parse_filter(value)
    except ValueError as e:
        raise click.BadParameter(str(e)) from None


def _report(_log, err: QueueShiftError):
    if err.fatal:
        _log.error("Error: %s", err)
        sys.exit(1)
    _log.warning("Warning: %s", err)


@click.command("queue-shift")
@click.option(
    "--source", "-s", required=True, help="The Queue url to pull messages from"
)
@click.option(
    "--dest", "-d", required=True, help="The Queue url to send messages to"
)
@click.option(
    "--filter",
    "-f",
    "flt",
    default=None,
    callback=_parse_filter_option,
    help="Optional filter for message attributes. Format Attribute=Value. "
    "Only messages containing the attribute with the correct value will be moved. "
    "If not specified then all messages are moved",
)
@click.option(
    "--profile",
    envvar="AWS_PROFILE",
    show_envvar=True,
    required=True,
    help="AWS profile to use to connect to the queues",
)
@click.option(
    "--region",
    envvar="AWS_DEFAULT_REGION",
    show_envvar=True,
    required=True,
    help="AWS region of the queues",
)
@click.option(
    "--stop-on-empty-match",
    is_flag=True,
    default=False,
    help="Stop at the first batch where no message matched the filter, "
    "instead of draining the whole source queue",
)
@click.option(
    "--visibility-timeout",
    type=click.IntRange(1, 43200),
    default=DEFAULT_VISIBILITY_TIMEOUT,
    show_default=True,
    help="Seconds pulled messages stay hidden from other consumers",
)
@click.option(
    "--max-wait",
    type=click.IntRange(0, 20),
    default=DEFAULT_WAIT_TIME,
    show_default=True,
    help="Longest to wait in seconds before assuming queue is empty",
)
@click.option(
    "--dryrun",
    is_flag=True,
    default=False,
    help="Don't actually do real work, only report the approximate number of "
    "messages on the source queue. The count ignores --filter, so it can be "
    "more than would be moved",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Debug logging")
def cli(
    source,
    dest,
    flt,
    profile,
    region,
    stop_on_empty_match,
    visibility_timeout,
    max_wait,
    dryrun,
    verbose,
):
    """
    Filter messages from an SQS queue onto another queue
    """

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="[%(asctime)s] %(levelname)s - %(message)s",
        stream=sys.stdout,
    )

    _log = logging.getLogger(__name__)

    try:
        client = SqsQueueClient(make_sqs_client(region_name=region, profile=profile))
    except QueueShiftError as e:
        _report(_log, e)
        return

    if dryrun:
        try:
            count = client.approximate_message_count(source)
        except QueueClientError as e:
            raise click.ClickException(str(e)) from e
        _log.warning(
            "DRYRUN enabled, would have looked at approx %s messages on the queue",
            count,
        )
        return

    transfer = MessageTransfer(
        client,
        source,
        dest,
        flt=flt,
        policy=FilterPolicy.STOP_ON_EMPTY if stop_on_empty_match else FilterPolicy.DRAIN,
        visibility_timeout=visibility_timeout,
        wait_time=max_wait,
    )

    # A failed visibility reset is logged by the transfer and never changes the exit code
    try:
        result = transfer.run()
    except QueueShiftError as e:
        _report(_log, e)
        return

    _log.info(
        "Completed sending %s messages to the queue, %s messages did not match the filter",
        result.moved,
        result.rejected,
    )


if __name__ == "__main__":
    cli()
