"""
Flask Web Application for the Max dialogue core

Stateless JSON surface: the caller posts the transcript (and any
context) on every request and receives the prompt, decisions and
verdicts. Nothing is stored between requests.

Endpoints:
- POST /api/state          transcript -> ConversationState
- POST /api/turn           transcript + context -> prompt + decisions
- POST /api/inquiry        freshness map -> next question + gaps
- POST /api/validate       model reply -> verdict
- POST /api/loop/initial   -> initial LoopStatus
- POST /api/loop/advance   LoopStatus (+ target step) -> LoopStatus
- POST /api/loop/block     LoopStatus + reason -> LoopStatus
"""

from flask import Flask, request, jsonify
import logging
import os

from companion.commands import PrepareTurn, RequestInquiry, ReviewReply
from companion.config import CoreConfig, load_config
from companion.contracts import Evidence, InquiryRecord
from companion.core.dialogue_orchestrator import DialogueOrchestrator
from companion.core.loop_status import LoopStatus, LoopStep
from companion.utils.helpers import parse_timestamp
from companion.utils.prompt_builder import AISettings, PromptBuildError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Initialize Flask app
app = Flask(__name__)
app.json.ensure_ascii = False

# Optional JSON config file overriding CoreConfig defaults
CONFIG_PATH = os.environ.get('MAX_CORE_CONFIG')

core_config = load_config(CONFIG_PATH) if CONFIG_PATH else CoreConfig()
orchestrator = DialogueOrchestrator(core_config)


class BadRequest(ValueError):
    """Request body is missing or malformed"""
    pass


def get_json_body():
    """Request body as a dict, BadRequest otherwise"""
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise BadRequest('Request body must be a JSON object')
    return data


def error_response(error, status):
    return jsonify({
        'success': False,
        'error': str(error)
    }), status


def parse_ai_settings(data):
    """Build AISettings from a request mapping (None if absent)"""
    if data is None:
        return None
    if not isinstance(data, dict):
        raise BadRequest('ai_settings must be an object')
    return AISettings(
        honesty_level=data.get('honesty_level', data.get('honestyLevel')),
        humor_level=data.get('humor_level', data.get('humorLevel')),
        mode=data.get('mode') or 'max'
    )


def parse_inquiry_records(items):
    """Build InquiryRecords from a request list, newest first"""
    if not isinstance(items, list):
        raise BadRequest('inquiry_records must be a list')
    records = []
    for item in items:
        if not isinstance(item, dict):
            raise BadRequest('inquiry_records entries must be objects')
        records.append(InquiryRecord(
            id=str(item.get('id', '')),
            question_text=item.get('question_text', ''),
            user_response=item.get('user_response'),
            data_gaps_addressed=tuple(item.get('data_gaps_addressed') or ()),
            created_at=item.get('created_at', ''),
            responded_at=item.get('responded_at')
        ))
    return tuple(records)


def parse_loop_status(data):
    status = data.get('status')
    if not isinstance(status, dict):
        raise BadRequest('status must be an object')
    return LoopStatus.from_dict(status)


def parse_now(data):
    if data.get('now') is None:
        return None
    now = parse_timestamp(data['now'])
    if now is None:
        raise BadRequest(f"Unparseable timestamp: {data['now']}")
    return now


def run_safely(label, handler):
    """
    Run an endpoint body with the standard error mapping:
    TypeError/ValueError/PromptBuildError -> 400, anything else -> 500.
    """
    try:
        return handler()
    except (TypeError, ValueError, PromptBuildError) as e:
        logger.warning(f"Bad request in {label}: {e}")
        return error_response(e, 400)
    except Exception as e:
        logger.error(f"Error in {label}: {e}")
        return error_response(e, 500)


@app.route('/api/state', methods=['POST'])
def conversation_state():
    """Derive the conversation state from a transcript"""
    def handler():
        data = get_json_body()
        state = orchestrator.extractor.extract(
            data.get('transcript', []),
            health_focus=data.get('health_focus')
        )
        return jsonify({
            'success': True,
            'state': state.to_dict()
        })

    return run_safely('conversation_state', handler)


@app.route('/api/turn', methods=['POST'])
def prepare_turn():
    """Build the prompt for the next reply"""
    def handler():
        data = get_json_body()
        transcript = data.get('transcript', [])
        if not isinstance(transcript, list):
            raise BadRequest('transcript must be a list')

        evidence = data.get('evidence', [])
        if not isinstance(evidence, list) or not all(isinstance(item, dict) for item in evidence):
            raise BadRequest('evidence must be a list of objects')

        command = PrepareTurn(
            transcript=tuple(transcript),
            language=data.get('language', core_config.default_language),
            health_focus=data.get('health_focus'),
            evidence=tuple(Evidence.from_dict(item) for item in evidence),
            ai_settings=parse_ai_settings(data.get('ai_settings')),
            persona_context=data.get('persona_context'),
            personality=data.get('personality'),
            inquiry_summary=data.get('inquiry_summary'),
            inquiry_records=parse_inquiry_records(data.get('inquiry_records', [])),
            memory_context=data.get('memory_context'),
            playbook_context=data.get('playbook_context'),
            seed=data.get('seed')
        )
        result = orchestrator.handle(command)

        return jsonify({
            'success': True,
            'prompt': result.prompt,
            'state': result.state.to_dict(),
            'context_block': result.context_block,
            'debug': result.debug
        })

    return run_safely('prepare_turn', handler)


@app.route('/api/inquiry', methods=['POST'])
def next_inquiry():
    """Next proactive question for missing or stale data"""
    def handler():
        data = get_json_body()
        recent_data = data.get('recent_data', {})
        if not isinstance(recent_data, dict):
            raise BadRequest('recent_data must be an object')

        result = orchestrator.handle(RequestInquiry(
            recent_data=recent_data,
            language=data.get('language', core_config.default_language),
            stale_threshold_hours=data.get('stale_threshold_hours'),
            now=parse_now(data)
        ))

        return jsonify({
            'success': True,
            'question': result.question.to_dict() if result.question else None,
            'gaps': [
                {
                    'field': gap.field,
                    'importance': gap.importance.value,
                    'description': gap.description
                }
                for gap in result.gaps
            ]
        })

    return run_safely('next_inquiry', handler)


@app.route('/api/validate', methods=['POST'])
def validate_reply():
    """Verdict on a model reply: accept or regenerate"""
    def handler():
        data = get_json_body()
        verdict = orchestrator.handle(ReviewReply(reply=data.get('reply')))

        return jsonify({
            'success': True,
            'valid': verdict.valid,
            'missing_parts': verdict.missing_parts,
            'regenerate': not verdict.valid
        })

    return run_safely('validate_reply', handler)


@app.route('/api/loop/initial', methods=['POST'])
def loop_initial():
    """Fresh loop status"""
    def handler():
        data = get_json_body()
        status = LoopStatus.initial(parse_now(data))
        return jsonify({
            'success': True,
            'status': status.to_dict()
        })

    return run_safely('loop_initial', handler)


@app.route('/api/loop/advance', methods=['POST'])
def loop_advance():
    """Advance the loop to the next (or a named later) step"""
    def handler():
        data = get_json_body()
        status = parse_loop_status(data)
        target = LoopStep(data['to']) if data.get('to') else None
        advanced = status.advance(target, parse_now(data))
        return jsonify({
            'success': True,
            'status': advanced.to_dict()
        })

    return run_safely('loop_advance', handler)


@app.route('/api/loop/block', methods=['POST'])
def loop_block():
    """Record why the loop is stuck"""
    def handler():
        data = get_json_body()
        status = parse_loop_status(data)
        blocked = status.block(data.get('reason', ''), parse_now(data))
        return jsonify({
            'success': True,
            'status': blocked.to_dict()
        })

    return run_safely('loop_block', handler)


if __name__ == '__main__':
    logger.info("Starting Max dialogue core API...")
    app.run(debug=False, host='0.0.0.0', port=5000)
