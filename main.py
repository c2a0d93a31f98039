import asyncio
import os

import httpx
import uvicorn

from kanban_sim.api import app, get_board


async def send_mock_requests():
    base_url = "http://127.0.0.1:8000"

    async with httpx.AsyncClient(timeout=30.0) as client:
        for worker_id, worker_type in [("R1", "red"), ("B1", "blue"), ("G1", "green")]:
            response = await client.post(
                f"{base_url}/workers", json={"id": worker_id, "type": worker_type}
            )
            print(f"Add worker {worker_id}: {response.status_code}")

        response = await client.put(
            f"{base_url}/wip-limits/redActive", json={"min": 0, "max": 2}
        )
        print(f"Limit red-active: {response.status_code} - {response.json()}")

        for _ in range(4):
            response = await client.post(f"{base_url}/cards", json={})
            print(f"Create card: {response.status_code} - {response.json()['id']}")

        response = await client.post(f"{base_url}/cards/A/move")
        print(f"Move card A: {response.status_code} - {response.json()}")

        for _ in range(10):
            response = await client.post(
                f"{base_url}/days/policy", json={"policyType": "siloted-expert"}
            )
            state = response.json()
            stages = [card["stage"] for card in state["cards"]]
            print(f"Day {state['currentDay']}: {stages}")

        response = await client.get(f"{base_url}/history")
        print(f"History: {response.status_code} - {len(response.json())} days")


async def main():
    # Keep the demo away from any saved board
    os.environ.setdefault("KANBAN_SIM_STATE_PATH", "")
    os.environ.setdefault("KANBAN_SIM_SEED", "42")

    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host="127.0.0.1",
            port=8000,
            log_level="info",
        )
    )

    async def run_server():
        await server.serve()

    server_task = asyncio.create_task(run_server())

    await asyncio.sleep(2)

    await send_mock_requests()
    get_board().board_view()

    server.should_exit = True
    await server_task


if __name__ == "__main__":
    asyncio.run(main())
