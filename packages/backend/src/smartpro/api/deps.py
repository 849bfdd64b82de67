"""FastAPI dependencies that hand out pieces of the AppContext."""

from fastapi import BackgroundTasks, Depends, Request

from smartpro.context import AppContext


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def schedule_dispatch(
    background_tasks: BackgroundTasks,
    ctx: AppContext = Depends(get_context),
) -> None:
    """After the response is sent, push freshly committed outbox rows out."""
    if ctx.settings.outbox_dispatch_after_write:
        background_tasks.add_task(ctx.dispatcher.kick)
