"""Slash command for listing available commands."""

from __future__ import annotations

from typing import List

from ..slash_commands import SlashCommandContext, SlashCommand, render_help_table


def _handler(context: SlashCommandContext, args: List[str]) -> str:
    if args:
        command = context.router.get(args[0].lstrip("/"))
        if command is None:
            return f"[help] No command named '/{args[0].lstrip('/')}'."
        return f"/{command.name}: {command.description}"
    table = render_help_table(context.router.commands())
    return f"{table}\nType 'exit' or press Ctrl-D to quit; subcommands are listed by '/sync help'."


COMMAND = SlashCommand(
    name="help",
    description="List slash commands, or describe one with /help <command>.",
    handler=_handler,
)
