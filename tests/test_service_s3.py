"""
Tests for S3 service operations.
"""

import json
import pytest
from unittest.mock import MagicMock, patch
from botocore.exceptions import ClientError
import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

from services import s3


def client_error(code, operation='GetObject'):
    return ClientError({'Error': {'Code': code, 'Message': code}}, operation)


class TestFetchEmailFromS3:
    """Test fetching email content from S3."""

    @patch('services.s3.s3_client')
    def test_fetch_email_success(self, mock_s3_client):
        """Test successful email fetch from S3."""
        # Setup
        sample_email = b"From: test@example.com\r\nSubject: Test\r\n\r\nBody content"
        mock_s3_client.get_object.return_value = {
            'Body': MagicMock(read=lambda: sample_email)
        }

        # Execute
        result = s3.fetch_email_from_s3('test-bucket', 'inbox/test.eml')

        # Assert
        assert result == sample_email
        mock_s3_client.get_object.assert_called_once_with(
            Bucket='test-bucket',
            Key='inbox/test.eml'
        )

    @patch('services.s3.s3_client')
    def test_fetch_email_no_such_key(self, mock_s3_client):
        """Test fetch when S3 object doesn't exist."""
        mock_s3_client.get_object.side_effect = client_error('NoSuchKey')

        with pytest.raises(ValueError, match="Email file not found in S3"):
            s3.fetch_email_from_s3('test-bucket', 'missing-email.eml')

    @patch('services.s3.s3_client')
    def test_fetch_email_no_such_bucket(self, mock_s3_client):
        """Test fetch when S3 bucket doesn't exist."""
        mock_s3_client.get_object.side_effect = client_error('NoSuchBucket')

        with pytest.raises(ValueError, match="S3 bucket not found"):
            s3.fetch_email_from_s3('missing-bucket', 'email.eml')

    @patch('services.s3.s3_client')
    def test_fetch_email_other_error_propagates(self, mock_s3_client):
        """Test that other client errors are re-raised."""
        mock_s3_client.get_object.side_effect = client_error('AccessDenied')

        with pytest.raises(ClientError):
            s3.fetch_email_from_s3('test-bucket', 'email.eml')


class TestListAndTags:
    """Test listing and tagging objects."""

    @patch('services.s3.s3_client')
    def test_list_email_keys_paginates(self, mock_s3_client):
        """Test that all pages are read and folder keys are skipped."""
        paginator = MagicMock()
        paginator.paginate.return_value = [
            {'Contents': [{'Key': 'inbox/'}, {'Key': 'inbox/a.eml'}]},
            {'Contents': [{'Key': 'inbox/b.eml'}]},
            {},
        ]
        mock_s3_client.get_paginator.return_value = paginator

        keys = s3.list_email_keys('bucket', 'inbox/')

        assert keys == ['inbox/a.eml', 'inbox/b.eml']
        mock_s3_client.get_paginator.assert_called_once_with('list_objects_v2')
        paginator.paginate.assert_called_once_with(Bucket='bucket', Prefix='inbox/')

    @patch('services.s3.s3_client')
    def test_get_object_tags(self, mock_s3_client):
        """Test tag set conversion to a dict."""
        mock_s3_client.get_object_tagging.return_value = {
            'TagSet': [{'Key': 'n2rss-read', 'Value': 'true'}]
        }

        assert s3.get_object_tags('bucket', 'key') == {'n2rss-read': 'true'}

    @patch('services.s3.s3_client')
    def test_tag_object_keeps_existing_tags(self, mock_s3_client):
        """Test that tagging merges with existing tags."""
        mock_s3_client.get_object_tagging.return_value = {
            'TagSet': [{'Key': 'source', 'Value': 'ses'}]
        }

        s3.tag_object('bucket', 'key', {'n2rss-read': 'true'})

        mock_s3_client.put_object_tagging.assert_called_once_with(
            Bucket='bucket',
            Key='key',
            Tagging={'TagSet': [
                {'Key': 'source', 'Value': 'ses'},
                {'Key': 'n2rss-read', 'Value': 'true'},
            ]},
        )


class TestMoveObject:
    """Test moving objects."""

    @patch('services.s3.s3_client')
    def test_move_copies_then_deletes(self, mock_s3_client):
        """Test copy + delete."""
        s3.move_object('bucket', 'inbox/a.eml', 'Processed/a.eml')

        mock_s3_client.copy_object.assert_called_once_with(
            Bucket='bucket',
            Key='Processed/a.eml',
            CopySource={'Bucket': 'bucket', 'Key': 'inbox/a.eml'},
            TaggingDirective='COPY',
        )
        mock_s3_client.delete_object.assert_called_once_with(Bucket='bucket', Key='inbox/a.eml')

    @patch('services.s3.s3_client')
    def test_failed_copy_keeps_source(self, mock_s3_client):
        """Test that the source is not deleted when the copy fails."""
        mock_s3_client.copy_object.side_effect = client_error('AccessDenied', 'CopyObject')

        with pytest.raises(ClientError):
            s3.move_object('bucket', 'inbox/a.eml', 'Processed/a.eml')

        mock_s3_client.delete_object.assert_not_called()


class TestUploadJson:
    """Test JSON uploads."""

    @patch('services.s3.s3_client')
    def test_upload_json(self, mock_s3_client):
        """Test successful upload."""
        s3.upload_json('bucket', 'publications/x.json', {'title': 'Café'})

        kwargs = mock_s3_client.put_object.call_args.kwargs
        assert kwargs['Bucket'] == 'bucket'
        assert kwargs['Key'] == 'publications/x.json'
        assert kwargs['ContentType'] == 'application/json'
        assert json.loads(kwargs['Body'].decode('utf-8')) == {'title': 'Café'}

    def test_upload_json_validates_parameters(self):
        """Test parameter validation."""
        with pytest.raises(ValueError, match="bucket name cannot be empty"):
            s3.upload_json('', 'key', {})
        with pytest.raises(ValueError, match="object key cannot be empty"):
            s3.upload_json('bucket', '', {})

    @patch('services.s3.s3_client')
    def test_upload_json_client_error(self, mock_s3_client):
        """Test that client errors are re-raised."""
        mock_s3_client.put_object.side_effect = client_error('AccessDenied', 'PutObject')

        with pytest.raises(ClientError):
            s3.upload_json('bucket', 'key', {})
