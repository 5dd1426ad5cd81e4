"""
Unit tests for the content store gateway.

The in-memory backend covers the put contract (key selection, reuse,
conflict policy, validation). The GCS backend is tested against a mocked
client without requiring actual GCS authentication.
"""

from unittest.mock import MagicMock, patch

import pytest
from google.api_core import exceptions as gcs_exceptions

from asset_import.errors import InvalidPayload, ObjectExists, StorageUnavailable
from asset_import.storage import (
    InMemoryContentStore,
    PutOptions,
    create_content_store,
    derive_key,
    guess_content_type,
)
from asset_import.storage.gcs import GCSContentStore, validate_bucket_name
from asset_import.utils.config import ImportConfig
from asset_import.utils.metrics import ImportMetrics

PAYLOAD = b"glTF\x02\x00\x00\x00binary"


class TestKeyAndContentType:
    def test_derive_key_sanitizes_name(self):
        assert derive_key("Old Chair (v2).glb", "admin-1", "furniture") == (
            "owners/admin-1/furniture/Old_Chair__v2_.glb"
        )

    def test_derive_key_without_category(self):
        assert derive_key("lamp.png", "system") == "owners/system/general/lamp.png"

    @pytest.mark.parametrize(
        "file_name, expected",
        [
            ("chair.glb", "model/gltf-binary"),
            ("Chair.GLB", "model/gltf-binary"),
            ("scene.gltf", "model/gltf+json"),
            ("sky.hdr", "image/vnd.radiance"),
            ("wood.dds", "image/vnd-ms.dds"),
            ("albedo.png", "image/png"),
            ("photo.jpeg", "image/jpeg"),
            ("mystery.unknownext", "application/octet-stream"),
        ],
    )
    def test_guess_content_type(self, file_name, expected):
        assert guess_content_type(file_name) == expected


class TestInMemoryContentStore:
    def test_put_with_specific_key(self, store):
        result = store.put(
            PAYLOAD,
            "chair.glb",
            "admin-1",
            PutOptions(specific_key="models/items/furniture/chair.glb"),
        )

        assert result.key == "models/items/furniture/chair.glb"
        assert result.url == "memory://objects/models/items/furniture/chair.glb"
        assert result.size == len(PAYLOAD)
        assert result.reused is False
        assert store.writes == 1

        stored = store.objects[result.key]
        assert stored.data == PAYLOAD
        assert stored.content_type == "model/gltf-binary"
        assert stored.metadata["originalName"] == "chair.glb"
        assert stored.metadata["ownerTag"] == "admin-1"
        assert "uploadedAt" in stored.metadata

    def test_put_derives_key_from_category_metadata(self, store):
        result = store.put(PAYLOAD, "chair.glb", "admin-1", PutOptions(metadata={"category": "c1"}))
        assert result.key == "owners/admin-1/c1/chair.glb"

    def test_caller_metadata_stored_as_strings(self, store):
        options = PutOptions(specific_key="a/b.glb", metadata={"checksum": "abc", "level": 2})
        store.put(PAYLOAD, "b.glb", "admin-1", options)
        assert store.objects["a/b.glb"].metadata["level"] == "2"
        assert store.objects["a/b.glb"].metadata["checksum"] == "abc"

    def test_existing_object_is_reused(self, store):
        options = PutOptions(specific_key="models/items/chair.glb")
        store.put(PAYLOAD, "chair.glb", "admin-1", options)

        second = store.put(b"different content", "chair.glb", "admin-1", options)

        assert second.reused is True
        assert second.size == len(PAYLOAD)
        assert store.writes == 1
        assert store.objects["models/items/chair.glb"].data == PAYLOAD

    def test_overwrite_policy_writes_again(self, store):
        options = PutOptions(specific_key="models/animations/male/walk.glb", ignore_if_exists=False)
        store.put(PAYLOAD, "walk.glb", "system", options)

        second = store.put(b"new take", "walk.glb", "system", options)

        assert second.reused is False
        assert store.writes == 2
        assert store.objects["models/animations/male/walk.glb"].data == b"new take"

    def test_fail_policy_raises_object_exists(self, metrics):
        store = InMemoryContentStore(on_conflict="fail", metrics=metrics)
        options = PutOptions(specific_key="models/animations/male/walk.glb", ignore_if_exists=False)
        store.put(PAYLOAD, "walk.glb", "system", options)

        with pytest.raises(ObjectExists) as exc_info:
            store.put(b"new take", "walk.glb", "system", options)

        assert exc_info.value.key == "models/animations/male/walk.glb"
        assert exc_info.value.url == "memory://objects/models/animations/male/walk.glb"
        assert exc_info.value.size == len(PAYLOAD)
        assert store.writes == 1

    @pytest.mark.parametrize("data", [b"", "text payload"])
    def test_invalid_payload(self, store, data):
        with pytest.raises(InvalidPayload):
            store.put(data, "chair.glb", "admin-1", PutOptions(specific_key="a/chair.glb"))
        assert store.writes == 0

    def test_payload_too_large(self, metrics):
        store = InMemoryContentStore(max_size_bytes=4, metrics=metrics)
        with pytest.raises(InvalidPayload, match="too large"):
            store.put(PAYLOAD, "chair.glb", "admin-1", PutOptions(specific_key="a/chair.glb"))

    @pytest.mark.parametrize("key", ["", "models/", "models//chair.glb", "models/../chair.glb"])
    def test_invalid_specific_key(self, store, key):
        with pytest.raises(InvalidPayload):
            store.put(PAYLOAD, "chair.glb", "admin-1", PutOptions(specific_key=key))

    def test_leading_slash_stripped(self, store):
        result = store.put(PAYLOAD, "c.glb", "admin-1", PutOptions(specific_key="/models/c.glb"))
        assert result.key == "models/c.glb"

    def test_unknown_conflict_policy(self, metrics):
        with pytest.raises(ValueError, match="on_conflict"):
            InMemoryContentStore(on_conflict="skip", metrics=metrics)


@pytest.fixture
def gcs_client():
    client = MagicMock()
    bucket = client.bucket.return_value
    bucket.blob.return_value.exists.return_value = False
    return client


def make_gcs_store(client, **kwargs):
    return GCSContentStore(
        bucket_name="myroom-assets",
        client=client,
        metrics=ImportMetrics(enabled=False),
        sleep=lambda _: None,
        **kwargs,
    )


class TestValidateBucketName:
    def test_valid_names(self):
        assert validate_bucket_name("myroom-assets") is True
        assert validate_bucket_name("assets_123") is True

    @pytest.mark.parametrize(
        "name", ["", "ab", "a" * 64, "google-assets", "g00gle-assets", "bad..name", "Upper", "a/b"]
    )
    def test_invalid_names(self, name):
        assert validate_bucket_name(name) is False

    def test_store_rejects_invalid_bucket(self):
        with pytest.raises(ValueError, match="Invalid GCS bucket name"):
            GCSContentStore(bucket_name="", client=MagicMock())


class TestGCSContentStore:
    def test_put_uploads_blob(self, gcs_client):
        store = make_gcs_store(gcs_client)
        bucket = gcs_client.bucket.return_value
        blob = bucket.blob.return_value

        result = store.put(
            PAYLOAD,
            "chair.glb",
            "admin-1",
            PutOptions(specific_key="models/items/furniture/chair.glb", metadata={"checksum": "abc"}),
        )

        gcs_client.bucket.assert_called_once_with("myroom-assets")
        bucket.blob.assert_called_with("models/items/furniture/chair.glb")
        blob.upload_from_string.assert_called_once_with(
            PAYLOAD, content_type="model/gltf-binary", timeout=300
        )
        assert blob.metadata["checksum"] == "abc"
        assert result.url == (
            "https://storage.googleapis.com/myroom-assets/models/items/furniture/chair.glb"
        )
        assert result.reused is False

    def test_public_base_url(self, gcs_client):
        store = make_gcs_store(gcs_client, public_base_url="https://cdn.example.com/")
        assert store.url_for("a/b.glb") == "https://cdn.example.com/a/b.glb"

    def test_existing_blob_is_reused(self, gcs_client):
        bucket = gcs_client.bucket.return_value
        bucket.blob.return_value.exists.return_value = True
        bucket.get_blob.return_value.size = 2048
        store = make_gcs_store(gcs_client)

        result = store.put(PAYLOAD, "chair.glb", "admin-1", PutOptions(specific_key="a/chair.glb"))

        assert result.reused is True
        assert result.size == 2048
        bucket.blob.return_value.upload_from_string.assert_not_called()

    def test_fail_policy_uses_generation_precondition(self, gcs_client):
        blob = gcs_client.bucket.return_value.blob.return_value
        blob.upload_from_string.side_effect = gcs_exceptions.PreconditionFailed("exists")
        store = make_gcs_store(gcs_client, on_conflict="fail")

        with pytest.raises(ObjectExists) as exc_info:
            store.put(
                PAYLOAD,
                "walk.glb",
                "system",
                PutOptions(specific_key="models/animations/male/walk.glb", ignore_if_exists=False),
            )

        assert exc_info.value.url.endswith("/models/animations/male/walk.glb")
        assert blob.upload_from_string.call_count == 1
        assert blob.upload_from_string.call_args.kwargs["if_generation_match"] == 0

    def test_transient_error_is_retried(self, gcs_client):
        blob = gcs_client.bucket.return_value.blob.return_value
        blob.upload_from_string.side_effect = [gcs_exceptions.ServiceUnavailable("busy"), None]
        store = make_gcs_store(gcs_client)

        result = store.put(PAYLOAD, "chair.glb", "admin-1", PutOptions(specific_key="a/chair.glb"))

        assert result.reused is False
        assert blob.upload_from_string.call_count == 2

    def test_permanent_error_becomes_storage_unavailable(self, gcs_client):
        blob = gcs_client.bucket.return_value.blob.return_value
        blob.upload_from_string.side_effect = gcs_exceptions.Forbidden("no write access")
        store = make_gcs_store(gcs_client)

        with pytest.raises(StorageUnavailable, match="GCS upload failed"):
            store.put(PAYLOAD, "chair.glb", "admin-1", PutOptions(specific_key="a/chair.glb"))
        assert blob.upload_from_string.call_count == 1

    def test_exists_failure_becomes_storage_unavailable(self, gcs_client):
        blob = gcs_client.bucket.return_value.blob.return_value
        blob.exists.side_effect = gcs_exceptions.Forbidden("denied")
        store = make_gcs_store(gcs_client)

        with pytest.raises(StorageUnavailable):
            store.exists("a/chair.glb")

    def test_make_public(self, gcs_client):
        store = make_gcs_store(gcs_client, make_public=True)
        store.put(PAYLOAD, "chair.glb", "admin-1", PutOptions(specific_key="a/chair.glb"))
        gcs_client.bucket.return_value.blob.return_value.make_public.assert_called_once()

    def test_client_created_lazily(self):
        with patch("asset_import.storage.gcs.storage.Client") as mock_client:
            store = GCSContentStore(bucket_name="myroom-assets", metrics=ImportMetrics(enabled=False))
            mock_client.assert_not_called()

            _ = store.bucket
            mock_client.assert_called_once()


class TestCreateContentStore:
    def test_memory_backend(self, metrics):
        store = create_content_store(ImportConfig(storage_backend="memory"), metrics=metrics)
        assert isinstance(store, InMemoryContentStore)

    def test_gcs_backend(self, metrics):
        config = ImportConfig(storage_backend="gcs", gcs_bucket="myroom-assets", on_conflict="fail")
        store = create_content_store(config, metrics=metrics)
        assert isinstance(store, GCSContentStore)
        assert store.on_conflict == "fail"

    def test_unknown_backend(self, metrics):
        with pytest.raises(ValueError, match="Unknown storage backend"):
            create_content_store(ImportConfig(storage_backend="s3"), metrics=metrics)
