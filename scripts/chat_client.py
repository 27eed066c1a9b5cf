"""
Lugha Chat Interactive Terminal Client.

Supports:
- Login / registration (session token)
- Picking or creating a conversation in one of the supported languages
- Real-time chat over the relay socket with automatic reconnect
"""

import argparse
import asyncio
import os

import httpx
from dotenv import load_dotenv

from lugha.client.http import LughaClient
from lugha.client.socket_manager import (
    ConnectionState,
    SocketManager,
    SocketManagerError,
    derive_socket_url,
)
from lugha.schemas.chat import Conversation, Message

# Load environment variables from .env file
load_dotenv()

# ANSI Colors for better UX
CYAN = "\033[96m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
BLUE = "\033[94m"
RESET = "\033[0m"
BOLD = "\033[1m"


async def ask(prompt: str) -> str:
    """input() without blocking the socket reader."""
    return (await asyncio.to_thread(input, prompt)).strip()


async def interactive_auth(client: LughaClient, username: str | None, password: str | None) -> bool:
    """Login, or register when asked to. Returns True once a session token is held."""
    if username and password:
        try:
            await client.login(username, password)
            return True
        except httpx.HTTPStatusError as e:
            print(f"{RED}Login failed: {e.response.text}{RESET}\n")
            return False

    print(f"\n{BOLD}--- Authentication ---{RESET}")
    print("1. Login (existing account)")
    print("2. Register (new account)")
    choice = await ask(f"\n{BOLD}Choice (1-2): {RESET}")

    username = await ask(f"{BOLD}Username: {RESET}")
    password = await ask(f"{BOLD}Password (min 6 chars): {RESET}")
    try:
        if choice == "2":
            await client.register(username, password)
            print(f"{GREEN}Registration successful!{RESET}\n")
        else:
            await client.login(username, password)
            print(f"{GREEN}Login successful!{RESET}\n")
        return True
    except httpx.HTTPStatusError as e:
        print(f"{RED}Authentication failed: {e.response.text}{RESET}\n")
        return False


async def pick_conversation(client: LughaClient, language: str) -> Conversation:
    conversations = await client.list_conversations()
    if conversations:
        print(f"{BOLD}Your conversations:{RESET}")
        for conversation in conversations:
            print(f"  {CYAN}{conversation.id}{RESET}  {conversation.title} [{conversation.language}]")
        choice = await ask(f"{BOLD}Conversation id (Enter for a new one): {RESET}")
        for conversation in conversations:
            if choice == str(conversation.id):
                return conversation

    title = await ask(f"{BOLD}Title for the new conversation: {RESET}") or "New conversation"
    return await client.create_conversation(title, language)


def print_message(message: Message) -> None:
    if message.is_user_message:
        print(f"{BLUE}[saved #{message.id}]{RESET}")
    else:
        print(f"{BOLD}Assistant > {RESET}{message.content}\n")


def print_state(state: ConnectionState) -> None:
    if state is ConnectionState.OFFLINE:
        print(f"{RED}Connection lost. Type /reconnect to try again.{RESET}")
    elif state is ConnectionState.CLOSED:
        print(f"{YELLOW}[disconnected]{RESET}")
    elif state is ConnectionState.OPEN:
        print(f"{GREEN}[connected]{RESET}")


async def chat_loop(base_url: str, username: str | None, password: str | None, language: str) -> None:
    """Main chat loop: HTTP for setup, the relay socket for messages."""
    async with LughaClient(base_url) as client:
        if not await interactive_auth(client, username, password):
            return

        languages = {lang.code: lang.name for lang in await client.list_languages() if lang.is_active}
        if language not in languages:
            print(f"{YELLOW}Unknown language {language!r}. Available: {', '.join(languages)}{RESET}")
            return

        conversation = await pick_conversation(client, language)
        history = await client.get_conversation(conversation.id)

        print(f"{BOLD}--- Lugha Chat CLI Client ---{RESET}")
        print(f"Target:       {CYAN}{base_url}{RESET}")
        print(f"User:         {GREEN}{client.user.username if client.user else '?'}{RESET}")
        print(f"Conversation: {CYAN}{conversation.title}{RESET} ({languages[conversation.language]})")
        print(f"\nType '{RED}exit{RESET}' or '{RED}quit{RESET}' to stop, '{BLUE}/reconnect{RESET}' after going offline.\n")

        for message in history.messages:
            speaker = "You" if message.is_user_message else "Assistant"
            print(f"{BOLD}{speaker} > {RESET}{message.content}")

        socket_url = derive_socket_url(base_url)
        if client.access_token:
            socket_url = f"{socket_url}?token={client.access_token}"
        sockets = SocketManager(socket_url)
        sockets.on_message(print_message)
        sockets.on_error(lambda error: print(f"{RED}Error: {error}{RESET}"))
        sockets.on_connection_state(print_state)

        await sockets.connect()
        try:
            while True:
                try:
                    user_input = await ask(f"{BOLD}You > {RESET}")
                except EOFError:
                    break
                if user_input.lower() in ("exit", "quit"):
                    break
                if user_input == "/reconnect":
                    await sockets.connect()
                    continue
                if not user_input:
                    continue

                try:
                    await sockets.send(conversation.id, user_input, conversation.user_id, conversation.language)
                except SocketManagerError as e:
                    print(f"{RED}{e}{RESET}")
        finally:
            await sockets.close()


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Lugha Chat Terminal Client")
    parser.add_argument("--url", default=os.getenv("LUGHA_URL", "http://localhost:8000"), help="Server base URL")
    parser.add_argument("--username", default=os.getenv("LUGHA_USERNAME"), help="Login username")
    parser.add_argument("--password", default=os.getenv("LUGHA_PASSWORD"), help="Login password")
    parser.add_argument("--language", default="swa", help="Language code for new conversations")
    args = parser.parse_args()

    try:
        asyncio.run(chat_loop(args.url, args.username, args.password, args.language))
    except KeyboardInterrupt:
        print(f"\n{YELLOW}Goodbye!{RESET}")


if __name__ == "__main__":
    main()
