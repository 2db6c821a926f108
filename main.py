"""
Console Test Harness for DialogueOrchestrator

Simple console loop to inspect the per-turn prompt before wiring a
model call. Each user line is appended to the transcript and the
prompt built for it is printed; the assistant reply is pasted back
by hand (end with a line containing only '.').

Commands:
    /focus <text>   set the user's health focus
    /lang zh|en     switch language
    /inquiry        show the next proactive question (no data known)
    quit, exit, stop
"""

import argparse
import logging
import sys
import traceback

from companion.commands import PrepareTurn, RequestInquiry, ReviewReply
from companion.config import CoreConfig, load_config
from companion.contracts import ChatMessage
from companion.core.dialogue_orchestrator import DialogueOrchestrator
from companion.utils.helpers import generate_session_id

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

EXIT_COMMANDS = {"quit", "exit", "stop"}
REPLY_TERMINATOR = "."


def print_separator(char="=", length=60):
    """Print a separator line"""
    print(char * length)


def print_debug_info(turn_result):
    """Print debug information from TurnResult"""
    print("\n" + "-" * 60)
    print("DEBUG INFO:")
    print("-" * 60)

    debug = turn_result.debug
    print(f"Context summary: {debug['context_summary']}")
    print(f"Full health context: {debug['include_full_health_context']}")
    print(f"Health reminder: {debug['include_health_reminder']}")
    print(f"Format / citation: {debug['format_style']} / {debug['citation_style']}")
    print(f"Mention health focus: {debug['should_mention_health_context']}")

    if debug.get('endearment'):
        print(f"Endearment: {debug['endearment']}")
    if debug.get('evidence_offered'):
        print(f"Evidence offered: {debug['evidence_offered']}")
    if debug.get('excluded_titles'):
        print(f"Already cited: {debug['excluded_titles']}")

    print("-" * 60)


def read_reply():
    """Read a multi-line assistant reply terminated by a lone '.'"""
    print(f"Paste assistant reply (end with a line containing only '{REPLY_TERMINATOR}'):")
    lines = []
    while True:
        line = input()
        if line.strip() == REPLY_TERMINATOR:
            break
        lines.append(line)
    return "\n".join(lines)


def main(argv=None):
    """Run console test"""
    parser = argparse.ArgumentParser(description="Max dialogue core console harness")
    parser.add_argument("--config", help="JSON file overriding CoreConfig defaults")
    parser.add_argument("--lang", default=None, help="zh or en")
    parser.add_argument("--focus", default=None, help="user's health focus")
    args = parser.parse_args(argv)

    print_separator()
    print("MAX DIALOGUE CORE - CONSOLE TEST")
    print_separator()

    try:
        config = load_config(args.config) if args.config else CoreConfig()
        orchestrator = DialogueOrchestrator(config)
    except Exception as e:
        print(f"\nFailed to initialize: {e}")
        traceback.print_exc()
        return 1

    language = args.lang or config.default_language
    health_focus = args.focus
    transcript = []

    session_id = generate_session_id()
    print(f"Session: {session_id}")
    print("Type 'quit', 'exit', or 'stop' to end\n")

    while True:
        try:
            user_input = input("> ").strip()
            if not user_input:
                print("Please enter a message.\n")
                continue

            if user_input.lower() in EXIT_COMMANDS:
                break

            if user_input.startswith("/focus"):
                health_focus = user_input[len("/focus"):].strip() or None
                print(f"Health focus: {health_focus}\n")
                continue

            if user_input.startswith("/lang"):
                language = user_input[len("/lang"):].strip() or config.default_language
                print(f"Language: {language}\n")
                continue

            if user_input == "/inquiry":
                result = orchestrator.handle(RequestInquiry(recent_data={}, language=language))
                if result.question is None:
                    print("No question to ask.\n")
                else:
                    print(f"\nInquiry: {result.question.question_text}")
                    for option in result.question.options or ():
                        print(f"  - {option.label} ({option.value})")
                    print()
                continue

            transcript.append(ChatMessage.user(user_input))
            turn_result = orchestrator.handle(PrepareTurn(
                transcript=tuple(transcript),
                language=language,
                health_focus=health_focus
            ))

            print_separator("-")
            print(turn_result.prompt)
            print_separator("-")
            print(f"[Turn {turn_result.state.turn_count}]")
            print_debug_info(turn_result)

            reply = read_reply()
            if reply.strip():
                transcript.append(ChatMessage.assistant(reply))
                verdict = orchestrator.handle(ReviewReply(reply=reply))
                if verdict.reply is not None:
                    status = "valid" if verdict.valid else f"regenerate, missing {verdict.missing_parts}"
                    print(f"Structured reply: {status}")
            print()

        except (KeyboardInterrupt, EOFError):
            print("\n\nSession interrupted by user")
            break

        except Exception as e:
            print(f"\nERROR: {e}")
            traceback.print_exc()

    print_separator()
    print("Console test complete")
    print_separator()
    return 0


if __name__ == '__main__':
    sys.exit(main())
