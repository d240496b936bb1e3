"""Interactive CLI simulator — place bricks against a running server."""

import asyncio

from brick_counter.config import settings
from brick_counter.services.client_api import BrickClient
from brick_counter.services.otp_engine import OTPEngine

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
BOLD = "\033[1m"
RESET = "\033[0m"

HELP = (
    f"{DIM}Commands: 'place [n]' (1-{settings.max_bricks_per_request}), 'guess <code>', "
    f"'bricks', 'code', 'sync', 'quit'{RESET}"
)


async def main() -> None:
    print(f"\n{BOLD}{'=' * 52}")
    print("  🧱  Brick Counter — Client Simulator")
    print(f"{'=' * 52}{RESET}\n")

    # ── Derive codes the same way the official page does ─
    engine = OTPEngine.from_settings(settings)
    client = BrickClient(settings.server_base_url, otp_engine=engine)

    print(f"{DIM}Server: {settings.server_base_url}{RESET}")
    offset = await client.sync_clock()
    print(f"{DIM}Clock offset: {offset:+.3f}s{RESET}")
    print(HELP + "\n")

    while True:
        try:
            user_input = input(f"{BLUE}{BOLD}>{RESET} ").strip()
        except (KeyboardInterrupt, EOFError):
            print(f"\n{DIM}Goodbye!{RESET}")
            break

        if not user_input:
            continue

        command, _, arg = user_input.partition(" ")
        command = command.lower()

        if command == "quit":
            print(f"{DIM}Goodbye!{RESET}")
            break

        if command == "bricks":
            print(f"{GREEN}{await client.get_bricks()} bricks{RESET}\n")
        elif command == "code":
            print(f"{YELLOW}Current code: {client.current_code()}{RESET}\n")
        elif command == "sync":
            print(f"{DIM}Clock offset: {await client.sync_clock():+.3f}s{RESET}\n")
        elif command == "place":
            amount = int(arg) if arg.isdigit() else 1
            outcome = await client.place(amount)
            _report(outcome.placed, outcome.count, outcome.status_code)
        elif command == "guess":
            outcome = await client.place(1, code=arg or "0")
            _report(outcome.placed, outcome.count, outcome.status_code)
        else:
            print(HELP + "\n")


def _report(placed: bool, count: int | None, status_code: int | None) -> None:
    if placed:
        print(f"{GREEN}{BOLD}Placed!{RESET} Counter is now {count}\n")
    else:
        print(f"{RED}{BOLD}Refused{RESET} (HTTP {status_code})\n")


if __name__ == "__main__":
    asyncio.run(main())
