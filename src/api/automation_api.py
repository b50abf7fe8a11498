"""
HTTP trigger surface for automation

    POST /api/automation/run-scheduled              run one scheduler tick
    POST /api/automation/channels/{channel_id}/run  run a channel now
    GET  /health
"""

import asyncio
import logging

from aiohttp import web

from ..automation.exceptions import (
    AutomationDisabled, CapacityReached, ChannelNotFound, ConcurrencyConflict, RunFailed
)

logger = logging.getLogger("autopilot.api")

SCHEDULER_KEY = web.AppKey("scheduler")


def create_app(scheduler) -> web.Application:
    """Build the aiohttp application around a scheduler"""
    app = web.Application()
    app[SCHEDULER_KEY] = scheduler
    app.router.add_post("/api/automation/run-scheduled", handle_run_scheduled)
    app.router.add_post("/api/automation/channels/{channel_id}/run", handle_run_channel)
    app.router.add_get("/health", handle_health)
    return app


async def handle_health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


async def handle_run_scheduled(request: web.Request) -> web.Response:
    scheduler = request.app[SCHEDULER_KEY]
    try:
        summary = await scheduler.run_scheduled_tick()
    except Exception as e:
        logger.exception(f"Error in run-scheduled: {e}")
        return web.json_response(
            {"error": "Failed to run scheduled automation", "message": str(e)}, status=500
        )

    return web.json_response({
        "success": True,
        "timestamp": summary.timestamp,
        "timezone": summary.timezone,
        "timezoneTime": summary.timezone_time,
        "processed": summary.processed,
        "jobsCreated": summary.jobs_created,
        "duration": round(summary.duration_seconds, 3),
        "results": [
            {
                "channelId": r.channel_id,
                "channelName": r.channel_name,
                "jobId": r.job_id,
                "timezone": r.timezone,
                "outcome": r.outcome.value if r.outcome else None,
                "error": r.error,
            }
            for r in summary.results
        ],
    })


async def handle_run_channel(request: web.Request) -> web.Response:
    scheduler = request.app[SCHEDULER_KEY]
    channel_id = request.match_info["channel_id"]

    try:
        result = await scheduler.run_now(channel_id)
    except ChannelNotFound as e:
        return web.json_response({"error": str(e)}, status=404)
    except (AutomationDisabled, ConcurrencyConflict, CapacityReached) as e:
        return web.json_response({"error": str(e)}, status=400)
    except RunFailed as e:
        return web.json_response(
            {"error": "Automation run failed", "message": str(e),
             "step": e.result.failed_step.value if e.result.failed_step else None},
            status=500,
        )

    return web.json_response({
        "success": True,
        "jobId": result.job_id,
        "channelId": result.channel_id,
        "channelName": result.channel_name,
    })


async def run_server(app: web.Application, host: str, port: int) -> None:
    """Serve the app until cancelled"""
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info(f"Automation API listening on http://{host}:{port}/api/automation")

    try:
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()
