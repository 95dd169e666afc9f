import unittest
from unittest.mock import patch

from companyhub.config import Settings
from companyhub.storage import InMemoryStorageClient, S3StorageClient, service_image_path


class StoragePathTests(unittest.TestCase):
    def test_service_image_path_layout(self):
        self.assertEqual(
            service_image_path(3, 7, "front.png", 1700000000000),
            "companies/3/services/7/front.png_1700000000000",
        )

    def test_service_image_path_strips_separators(self):
        self.assertEqual(
            service_image_path("c", "s", "../etc/passwd", 1),
            "companies/c/services/s/.._etc_passwd_1",
        )
        self.assertEqual(service_image_path("c", "s", "", 1), "companies/c/services/s/image_1")


class InMemoryStorageClientTests(unittest.TestCase):
    def test_upload_and_delete(self):
        storage = InMemoryStorageClient()
        storage.upload_bytes("a/b c.png", b"data", "image/png")
        self.assertEqual(storage.stored_objects, {"a/b c.png": b"data"})
        self.assertEqual(
            storage.public_url("a/b c.png"), "https://example.test/storage/a/b%20c.png"
        )
        storage.delete("a/b c.png")
        with self.assertRaises(FileNotFoundError):
            storage.delete("a/b c.png")


@patch("companyhub.storage.boto3.client")
class S3StorageClientTests(unittest.TestCase):
    def _client(self, **kwargs):
        return S3StorageClient(
            bucket="images",
            region="us-east-1",
            endpoint="",
            access_key_id="key",
            secret_access_key="secret",
            **kwargs,
        )

    def test_upload_and_delete(self, mock_boto):
        storage = self._client()
        storage.upload_bytes("companies/1/x.png", b"png", "image/png")
        storage.delete("companies/1/x.png")

        s3 = mock_boto.return_value
        s3.put_object.assert_called_once_with(
            Bucket="images", Key="companies/1/x.png", Body=b"png", ContentType="image/png"
        )
        s3.delete_object.assert_called_once_with(Bucket="images", Key="companies/1/x.png")
        self.assertIsNone(mock_boto.call_args.kwargs["endpoint_url"])

    def test_public_url_uses_base_url(self, mock_boto):
        storage = self._client(public_base_url="https://cdn.example/")
        self.assertEqual(
            storage.public_url("companies/1/x.png"), "https://cdn.example/companies/1/x.png"
        )
        mock_boto.return_value.generate_presigned_url.assert_not_called()

    def test_public_url_falls_back_to_presigned(self, mock_boto):
        mock_boto.return_value.generate_presigned_url.return_value = "https://signed"
        storage = self._client()
        self.assertEqual(storage.public_url("k"), "https://signed")


class SettingsTests(unittest.TestCase):
    def test_in_memory_toggle_wins(self):
        settings = Settings(
            use_in_memory_backends=True, database_backend="sql", database_url="sqlite://"
        )
        self.assertEqual(settings.effective_database_backend, "memory")

    def test_database_url_implies_sql(self):
        settings = Settings(
            use_in_memory_backends=False,
            database_backend="memory",
            database_url="postgresql://localhost/db",
        )
        self.assertEqual(settings.effective_database_backend, "sql")

    def test_cors_origins_list(self):
        settings = Settings(cors_origins="https://a.example, ,https://b.example")
        self.assertEqual(
            settings.cors_origins_list, ["https://a.example", "https://b.example"]
        )


if __name__ == "__main__":
    unittest.main()
