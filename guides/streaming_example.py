"""Stream execution events for a workflow as server-sent-event frames."""

import asyncio

from stepwise import ExecuteRequest, WorkflowService
from stepwise.streaming import encode_sse


async def main():
    service = WorkflowService()
    workflow = await service.create_workflow(
        "guide-user",
        {
            "name": "Ping",
            "steps": [
                {"id": "wait", "name": "Wait", "type": "delay", "delayMs": 200, "successors": ["ping"]},
                {"id": "ping", "name": "Ping", "type": "webhook"},
            ],
        },
    )

    async for event in await service.stream("guide-user", workflow.id, ExecuteRequest(stream=True)):
        print(encode_sse(event), end="")


if __name__ == "__main__":
    asyncio.run(main())
