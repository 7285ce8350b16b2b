"""Tests for JSON API endpoints."""

from unittest.mock import patch

from codecoach.analysis.errors import LeaseUnavailable

CODE = 'def fact(n):\n    return n * fact(n - 1)\n'


def _recursion_response(factory):
    return factory.response(
        errors=[factory.error('recursion', 'high', 'missing_base_case')],
        weak_areas=['recursion'],
        quality_score=48,
    )


class TestHealth:
    def test_health(self, client):
        resp = client.get('/health')
        assert resp.status_code == 200
        assert resp.get_json()['status'] == 'ok'


class TestSubmissionsAPI:
    def test_submit_completed(self, client, coach, provider, sample_data, response_factory):
        provider.push(_recursion_response(response_factory))
        resp = client.post('/api/submissions', json={
            'user_id': sample_data['user_id'],
            'code': CODE,
            'language': 'python',
            'topic': 'recursion',
        })
        assert resp.status_code == 200
        data = resp.get_json()
        assert data['status'] == 'completed'
        assert data['weak_areas'] == ['recursion']
        assert data['errors'][0]['severity'] == 'high'
        assert data['practice']
        assert all('recursion' in p['target_areas'] for p in data['practice'])
        assert data['growth']['quality_component'] == 48

    def test_submit_queued(self, client, coach, provider, sample_data):
        provider.push(*[ConnectionError('reset')] * 4)
        resp = client.post('/api/submissions', json={
            'user_id': sample_data['user_id'], 'code': CODE, 'language': 'python',
        })
        assert resp.status_code == 202
        data = resp.get_json()
        assert data['status'] == 'queued'
        assert data['last_error']['kind'] == 'transient'

    def test_submit_unknown_user(self, client, coach, provider):
        resp = client.post('/api/submissions', json={
            'user_id': 999, 'code': CODE, 'language': 'python',
        })
        assert resp.status_code == 404
        assert resp.get_json()['error']['kind'] == 'referential_integrity'
        assert provider.calls == []

    def test_submit_unsupported_language(self, client, coach, sample_data):
        resp = client.post('/api/submissions', json={
            'user_id': sample_data['user_id'], 'code': CODE, 'language': 'cobol',
        })
        assert resp.status_code == 422
        assert resp.get_json()['error']['kind'] == 'rejected'

    def test_submit_bad_payload(self, client, coach, sample_data):
        assert client.post('/api/submissions', json={'code': CODE}).status_code == 400
        resp = client.post('/api/submissions', json={
            'user_id': str(sample_data['user_id']), 'code': CODE, 'language': 'python',
        })
        assert resp.status_code == 400
        resp = client.post('/api/submissions', data='not json')
        assert resp.status_code == 400

    def test_submit_component_failure(self, client, coach, provider, sample_data,
                                      response_factory):
        provider.push(_recursion_response(response_factory))
        with patch.object(coach.growth, 'record_submission', side_effect=ValueError('boom')):
            resp = client.post('/api/submissions', json={
                'user_id': sample_data['user_id'], 'code': CODE, 'language': 'python',
            })
        assert resp.status_code == 502
        assert resp.get_json()['error']['kind'] == 'component_failure'

    def test_submit_lease_conflict(self, client, coach, sample_data):
        with patch.object(coach.orchestrator, 'submit_for_analysis',
                          side_effect=LeaseUnavailable('busy')):
            resp = client.post('/api/submissions', json={
                'user_id': sample_data['user_id'], 'code': CODE, 'language': 'python',
            })
        assert resp.status_code == 409

    def test_get_submission(self, client, coach, provider, sample_data, response_factory):
        provider.push(_recursion_response(response_factory))
        created = client.post('/api/submissions', json={
            'user_id': sample_data['user_id'], 'code': CODE, 'language': 'python',
        }).get_json()

        resp = client.get(f"/api/submissions/{created['submission_id']}")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data['state'] == 'completed'
        assert data['outcome']['quality_score'] == 48
        assert [p['id'] for p in data['practice']] == [p['id'] for p in created['practice']]

    def test_get_missing_submission(self, client, coach):
        assert client.get('/api/submissions/12345').status_code == 404


class TestUserAPI:
    def test_weak_areas(self, client, coach, provider, sample_data, response_factory):
        uid = sample_data['user_id']
        provider.push(_recursion_response(response_factory))
        client.post('/api/submissions', json={'user_id': uid, 'code': CODE, 'language': 'python'})

        resp = client.get(f'/api/users/{uid}/weak-areas')
        assert resp.status_code == 200
        areas = resp.get_json()['weak_areas']
        assert [a['tag'] for a in areas] == ['recursion']
        assert areas[0]['frequency'] == 1

    def test_weak_areas_unknown_user(self, client, coach):
        assert client.get('/api/users/999/weak-areas').status_code == 404

    def test_growth(self, client, coach, sample_data):
        uid = sample_data['user_id']
        resp = client.get(f'/api/users/{uid}/growth?weeks=4')
        assert resp.status_code == 200
        data = resp.get_json()
        assert data['current']['overall'] == 50
        assert data['snapshots'] == []
        assert data['trend']['direction'] == 'stable'

    def test_practice_attempt(self, client, coach, sample_data):
        uid = sample_data['user_id']
        problem_id = sample_data['problem_ids']['loops_easy']
        resp = client.post(f'/api/users/{uid}/practice-attempts', json={
            'problem_id': problem_id, 'passed': True,
        })
        assert resp.status_code == 201
        assert resp.get_json()['growth']['problem_solving_component'] == 100

    def test_practice_attempt_unknown_problem(self, client, coach, sample_data):
        resp = client.post(f"/api/users/{sample_data['user_id']}/practice-attempts", json={
            'problem_id': 9999, 'passed': False,
        })
        assert resp.status_code == 404

    def test_practice_attempt_bad_body(self, client, coach, sample_data):
        resp = client.post(f"/api/users/{sample_data['user_id']}/practice-attempts", json={
            'problem_id': 1, 'passed': 'yes',
        })
        assert resp.status_code == 400
