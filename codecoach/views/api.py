import logging

from flask import Blueprint, jsonify, request

from codecoach.analysis.errors import CodecoachError, ErrorKind, LeaseUnavailable
from codecoach.services.coach_service import get_coach_service

logger = logging.getLogger(__name__)

api_bp = Blueprint('api', __name__, url_prefix='/api')

_STATUS_CODES = {
    'completed': 200,
    'queued': 202,
}

_ERROR_STATUS_CODES = {
    ErrorKind.REJECTED.value: 422,
    ErrorKind.REFERENTIAL_INTEGRITY.value: 404,
}


def _bad_request(message):
    return jsonify({'error': {'kind': ErrorKind.REJECTED.value, 'message': message}}), 400


@api_bp.route('/submissions', methods=['POST'])
def create_submission():
    data = request.get_json(silent=True) or {}
    user_id = data.get('user_id')
    code = data.get('code')
    language = data.get('language')
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        return _bad_request('user_id must be an integer')
    if not isinstance(code, str) or not isinstance(language, str):
        return _bad_request('code and language are required strings')
    topic = data.get('topic')
    if topic is not None and not isinstance(topic, str):
        return _bad_request('topic must be a string')

    service = get_coach_service()
    try:
        result = service.orchestrator.submit_for_analysis(
            user_id, code, language, topic=topic,
        )
    except LeaseUnavailable as e:
        return jsonify({'error': e.to_dict()}), 409

    if result.status == 'errored':
        status = _ERROR_STATUS_CODES.get(result.error_kind, 502)
    else:
        status = _STATUS_CODES.get(result.status, 200)
    return jsonify(result.to_dict()), status


@api_bp.route('/submissions/<int:submission_id>')
def get_submission(submission_id):
    view = get_coach_service().submission_view(submission_id)
    if view is None:
        return jsonify({'error': 'Submission not found'}), 404
    return jsonify(view)


@api_bp.route('/users/<int:user_id>/weak-areas')
def weak_areas(user_id):
    service = get_coach_service()
    if service.repository.get_user(user_id) is None:
        return jsonify({'error': 'User not found'}), 404
    return jsonify({'user_id': user_id, 'weak_areas': service.weak_areas_view(user_id)})


@api_bp.route('/users/<int:user_id>/growth')
def growth(user_id):
    service = get_coach_service()
    if service.repository.get_user(user_id) is None:
        return jsonify({'error': 'User not found'}), 404
    weeks = request.args.get('weeks', type=int)
    return jsonify({'user_id': user_id, **service.growth_view(user_id, weeks)})


@api_bp.route('/users/<int:user_id>/practice-attempts', methods=['POST'])
def record_practice_attempt(user_id):
    data = request.get_json(silent=True) or {}
    problem_id = data.get('problem_id')
    passed = data.get('passed')
    if not isinstance(problem_id, int) or not isinstance(passed, bool):
        return _bad_request('problem_id (integer) and passed (boolean) are required')

    service = get_coach_service()
    try:
        score = service.growth.record_practice_attempt(user_id, problem_id, passed)
    except CodecoachError as e:
        if e.kind == ErrorKind.REFERENTIAL_INTEGRITY:
            return jsonify({'error': e.to_dict()}), 404
        raise
    logger.info(f"Practice attempt user={user_id} problem={problem_id} passed={passed}")
    return jsonify({'user_id': user_id, 'growth': score.to_dict()}), 201
