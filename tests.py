"""
Tests for the MRZ service API.
"""
import io

import pytest

from app import create_app
from layer1_capture import MRZReader

LINE1 = "P<USADOE<<JOHN<MICHAEL<<<<<<<<<<<<<<<<<<<<<<"
LINE2 = "AB12345676USA9001011M3001012<<<<<<<<<<<<<<06"
MRZ_TEXT = f"{LINE1}\n{LINE2}"


class TestServiceEndpoints:
    """Test health and status endpoints."""

    def test_health_check(self, client):
        """Test health endpoint returns healthy status."""
        response = client.get('/health')

        assert response.status_code == 200
        data = response.get_json()
        assert data['status'] == 'healthy'
        assert data['service'] == 'mrz-service'

    def test_status(self, client):
        """Test status reports filler mode and storage counts."""
        response = client.get('/api/status')

        data = response.get_json()
        assert data['success'] is True
        assert data['document_filler_available'] is True
        assert data['document_filler_mode'] == 'generated'
        assert data['date_order'] == 'MDY'
        assert data['storage'] == {'scans': 0, 'events': 0}


class TestDecodeEndpoint:
    """Test MRZ text decoding over HTTP."""

    def test_decode(self, client, sample_mrz_text):
        """Test a full read returns fields and display dates."""
        response = client.post('/api/decode', json={'text': sample_mrz_text})

        assert response.status_code == 200
        data = response.get_json()
        assert data['success'] is True
        assert data['data']['surname'] == 'DOE'
        assert data['data']['sex'] == 'M'
        assert data['display']['date_of_birth'] == '01/01/1990'
        assert data['display']['expiry_date'] == '01/01/2030'
        assert data['missing_fields'] == []

    def test_decode_fixed_width(self, client, sample_mrz_td3):
        """Test the single-buffer input format."""
        response = client.post('/api/decode', json={
            'text': ''.join(sample_mrz_td3),
            'fixed_width': True
        })

        assert response.status_code == 200
        assert response.get_json()['data']['document_number'] == 'AB1234567'

    def test_decode_insufficient_lines(self, client):
        """Test a single line is rejected with 422."""
        response = client.post('/api/decode', json={'text': LINE1})

        assert response.status_code == 422
        data = response.get_json()
        assert data['success'] is False
        assert data['error_code'] == 'INSUFFICIENT_LINES'

    @pytest.mark.parametrize("body", [{'text': None}, {'text': 42}, {}])
    def test_decode_requires_text(self, client, body):
        response = client.post('/api/decode', json=body)

        assert response.status_code == 400
        assert response.get_json()['error_code'] == 'VALIDATION_FAILED'

    def test_invalid_json(self, client):
        """Test a non-JSON body is rejected."""
        response = client.post('/api/decode', data='not json', content_type='application/json')

        assert response.status_code == 400

    def test_unexpected_error(self, app, monkeypatch):
        """Test unexpected failures return a 500 JSON error."""
        def explode(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(app.extensions['scanner'], 'decode_text', explode)

        response = app.test_client().post('/api/decode', json={'text': MRZ_TEXT})

        assert response.status_code == 500
        data = response.get_json()
        assert data['error_code'] == 'UNEXPECTED_ERROR'
        assert data['details']['error_type'] == 'RuntimeError'


class TestNormalizeEndpoint:
    """Test date normalization over HTTP."""

    def test_birth_date(self, client):
        response = client.post('/api/dates/normalize', json={'date': '900101'})

        data = response.get_json()
        assert data['date'] == '01/01/1990'
        assert data['order'] == 'MDY'

    def test_expiry_day_first(self, client):
        response = client.post('/api/dates/normalize', json={
            'date': '301231', 'is_expiry': True, 'order': 'DMY'
        })

        assert response.get_json()['date'] == '31/12/2030'

    def test_invalid_date(self, client):
        """Test malformed dates return the sentinel, not an error."""
        response = client.post('/api/dates/normalize', json={'date': '021301'})

        assert response.status_code == 200
        assert response.get_json()['date'] == 'Invalid date'

    def test_unknown_order(self, client):
        response = client.post('/api/dates/normalize', json={'date': '900101', 'order': 'YMD'})

        assert response.status_code == 400


class TestExtractEndpoint:
    """Test image extraction with a stubbed OCR engine."""

    def test_extract_no_image(self, client):
        """Test extract endpoint without image."""
        response = client.post('/api/extract')

        assert response.status_code == 400
        assert response.get_json()['error_code'] == 'NO_IMAGE'

    def test_extract_with_consensus(self, tmp_path, fake_engine_factory, image_file):
        """Test repeated frames are voted on and decoded."""
        engine = fake_engine_factory([MRZ_TEXT, MRZ_TEXT])
        app = create_app({
            'TESTING': True,
            'DATABASE_PATH': str(tmp_path / "scans.db"),
            'FILLED_DOCUMENTS_DIR': str(tmp_path / "filled_documents"),
            'TEMPLATE_PATH': None,
            'MRZ_READER': MRZReader(tessdata_path="models/", engine=engine),
        })
        image_bytes = image_file.read_bytes()

        response = app.test_client().post('/api/extract', data={
            'image': [
                (io.BytesIO(image_bytes), 'frame1.png'),
                (io.BytesIO(image_bytes), 'frame2.png'),
            ]
        }, content_type='multipart/form-data')

        assert response.status_code == 200
        data = response.get_json()
        assert data['data']['surname'] == 'DOE'
        assert data['consensus']['count'] == 2
        assert len(engine.calls) == 2

    def test_extract_without_consensus(self, tmp_path, fake_engine_factory, image_file):
        """Test disagreeing frames return 422."""
        engine = fake_engine_factory([MRZ_TEXT, f"{LINE1}\nAB99999990USA"])
        app = create_app({
            'TESTING': True,
            'DATABASE_PATH': str(tmp_path / "scans.db"),
            'FILLED_DOCUMENTS_DIR': str(tmp_path / "filled_documents"),
            'MRZ_READER': MRZReader(tessdata_path="models/", engine=engine),
        })
        image_bytes = image_file.read_bytes()

        response = app.test_client().post('/api/extract', data={
            'image': [
                (io.BytesIO(image_bytes), 'frame1.png'),
                (io.BytesIO(image_bytes), 'frame2.png'),
            ]
        }, content_type='multipart/form-data')

        assert response.status_code == 422
        assert response.get_json()['error_code'] == 'CONSENSUS_NOT_REACHED'


class TestEventEndpoints:
    """Test event management."""

    def test_create_and_list(self, client):
        response = client.post('/api/events', json={'name': 'Flight UA 100'})

        assert response.status_code == 201
        event = response.get_json()['event']
        assert event['name'] == 'Flight UA 100'

        listed = client.get('/api/events').get_json()['events']
        assert [e['id'] for e in listed] == [event['id']]

    def test_create_requires_name(self, client):
        response = client.post('/api/events', json={'name': 5})

        assert response.status_code == 400

    def test_update_event(self, client):
        event_id = client.post('/api/events', json={'name': 'A'}).get_json()['event']['id']

        response = client.put(f'/api/events/{event_id}', json={'description': 'Evacuees'})

        assert response.status_code == 200
        assert response.get_json()['event']['description'] == 'Evacuees'

    def test_event_with_scans(self, client, sample_mrz_text):
        event_id = client.post('/api/events', json={'name': 'A'}).get_json()['event']['id']
        client.post('/api/scans', json={'text': sample_mrz_text, 'event_id': event_id})

        data = client.get(f'/api/events/{event_id}').get_json()

        assert data['event']['name'] == 'A'
        assert [s['surname'] for s in data['scans']] == ['DOE']

    def test_missing_event(self, client):
        response = client.get('/api/events/404')

        assert response.status_code == 404
        assert response.get_json()['error_code'] == 'EVENT_NOT_FOUND'


class TestScanEndpoints:
    """Test scan records and form export."""

    def _create(self, client, text, **extra):
        response = client.post('/api/scans', json={'text': text, **extra})
        assert response.status_code == 201
        return response.get_json()['scan']

    def test_create_from_text(self, client, sample_mrz_text):
        """Test raw text is decoded and extra fields kept."""
        scan = self._create(client, sample_mrz_text, carrier='UA', confidence=0.9)

        assert scan['id'] is not None
        assert scan['surname'] == 'DOE'
        assert scan['document_number'] == 'AB1234567'
        assert scan['carrier'] == 'UA'
        assert scan['confidence'] == 0.9

    def test_create_from_fields(self, client):
        """Test manual entry without MRZ text."""
        response = client.post('/api/scans', json={'surname': 'ROE', 'first_name': 'JANE'})

        assert response.status_code == 201
        assert response.get_json()['scan']['surname'] == 'ROE'

    def test_create_unknown_field(self, client, sample_mrz_text):
        response = client.post('/api/scans', json={'text': sample_mrz_text, 'self': 'x'})

        assert response.status_code == 400
        assert response.get_json()['error_code'] == 'UNKNOWN_FIELD'

    def test_create_with_bad_text(self, client):
        response = client.post('/api/scans', json={'text': LINE1})

        assert response.status_code == 422

    def test_get_and_list(self, client, sample_mrz_text):
        scan = self._create(client, sample_mrz_text)

        data = client.get(f"/api/scans/{scan['id']}").get_json()
        assert data['scan'] == scan
        assert data['display']['date_of_birth'] == '01/01/1990'

        listed = client.get('/api/scans').get_json()['scans']
        assert [s['id'] for s in listed] == [scan['id']]

    def test_list_filtered_by_event(self, client, sample_mrz_text):
        """Test the event_id filter only returns that event's scans."""
        event_id = client.post('/api/events', json={'name': 'A'}).get_json()['event']['id']
        grouped = self._create(client, sample_mrz_text, event_id=event_id)
        self._create(client, sample_mrz_text)

        listed = client.get(f'/api/scans?event_id={event_id}').get_json()['scans']

        assert [s['id'] for s in listed] == [grouped['id']]

    @pytest.mark.parametrize("event_id", ["abc", "1.5", ""])
    def test_list_rejects_malformed_event_filter(self, client, sample_mrz_text, event_id):
        """Test a non-integer event_id is an error, not an unfiltered list."""
        self._create(client, sample_mrz_text)

        response = client.get(f'/api/scans?event_id={event_id}')

        assert response.status_code == 400
        data = response.get_json()
        assert data['error_code'] == 'VALIDATION_FAILED'
        assert data['details']['field'] == 'event_id'

    def test_patch_scan(self, client, sample_mrz_text):
        """Test user corrections are saved."""
        scan = self._create(client, sample_mrz_text)

        response = client.patch(f"/api/scans/{scan['id']}", json={
            'first_name': 'JON', 'email': 'jon@example.com'
        })

        assert response.status_code == 200
        updated = response.get_json()['scan']
        assert updated['first_name'] == 'JON'
        assert updated['email'] == 'jon@example.com'
        assert updated['surname'] == 'DOE'

    def test_patch_rejects_structured_value(self, client, sample_mrz_text):
        """Test a JSON object in a text field is rejected."""
        scan = self._create(client, sample_mrz_text)

        response = client.patch(f"/api/scans/{scan['id']}", json={'surname': {'x': [1]}})

        assert response.status_code == 400
        assert response.get_json()['details']['field'] == 'surname'
        assert client.get(f"/api/scans/{scan['id']}").get_json()['scan']['surname'] == 'DOE'

    def test_patch_unknown_field(self, client, sample_mrz_text):
        scan = self._create(client, sample_mrz_text)

        response = client.patch(f"/api/scans/{scan['id']}", json={'nickname': 'Johnny'})

        assert response.status_code == 400
        assert response.get_json()['details']['fields'] == ['nickname']

    def test_missing_scan(self, client):
        response = client.get('/api/scans/999')

        assert response.status_code == 404
        assert response.get_json()['error_code'] == 'SCAN_NOT_FOUND'

    def test_form_download(self, client, sample_mrz_text):
        """Test the DS-3072 PDF is sent as an attachment."""
        scan = self._create(client, sample_mrz_text)

        response = client.get(f"/api/scans/{scan['id']}/form")

        assert response.status_code == 200
        assert response.content_type == 'application/pdf'
        assert response.data.startswith(b'%PDF')
        assert 'DOE_JOHN' in response.headers['Content-Disposition']
        response.close()

    def test_form_requires_surname(self, client):
        scan_id = client.post('/api/scans', json={'first_name': 'JANE'}).get_json()['scan']['id']

        response = client.get(f'/api/scans/{scan_id}/form')

        assert response.status_code == 422
        assert response.get_json()['error_code'] == 'DOCUMENT_FILLING_FAILED'

    def test_delete_all(self, client, sample_mrz_text):
        self._create(client, sample_mrz_text)
        client.post('/api/events', json={'name': 'A'})

        response = client.delete('/api/data')

        assert response.status_code == 200
        assert client.get('/api/status').get_json()['storage'] == {'scans': 0, 'events': 0}
