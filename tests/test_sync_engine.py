"""Tests for the sync engine."""

from unittest.mock import Mock, call

import pytest

from pytheme.api import ThemeClient
from pytheme.exceptions import (
    InvalidAssetDataError,
    RemoteDriftConflictError,
    ThemeTransferError,
)
from pytheme.models import Asset
from pytheme.output import OutputFormatter
from pytheme.sync import (
    AssetPolicy,
    JsonStore,
    LocalAssetStore,
    ManifestCache,
    RateLimiter,
    SnapshotStore,
    ThemeSync,
    TransferOutcome,
)
from pytheme.sync.engine import NAPTIME_MESSAGE
from pytheme.utils import sha256_digest


def listing(*keys, **attributes):
    return [Asset(key=key, attributes=dict(attributes)) for key in keys]


class EngineTestBase:
    """Shared fixtures: mocked client and output, real files in tmp_path."""

    @pytest.fixture
    def mock_client(self):
        client = Mock(spec=ThemeClient)
        client.list_assets.return_value = []
        return client

    @pytest.fixture
    def mock_output(self):
        return Mock(spec=OutputFormatter)

    @pytest.fixture
    def store(self, tmp_path):
        return JsonStore(tmp_path)

    @pytest.fixture
    def local(self, tmp_path):
        return LocalAssetStore(tmp_path / "theme")

    @pytest.fixture
    def manifest(self, store):
        return ManifestCache(store)

    @pytest.fixture
    def snapshot(self, store):
        return SnapshotStore(store)

    @pytest.fixture
    def engine(self, mock_client, local, manifest, snapshot, mock_output):
        return ThemeSync(
            client=mock_client,
            local=local,
            manifest=manifest,
            snapshot=snapshot,
            output=mock_output,
        )


class TestInit(EngineTestBase):
    """Tests for init."""

    def test_records_digests_and_snapshot(
        self, engine, mock_client, manifest, snapshot, local
    ):
        """Init fills the manifest and snapshot without touching local files."""
        remote = listing("assets/a.css", size=6)
        mock_client.list_assets.return_value = remote
        mock_client.get_asset.return_value = Asset(key="assets/a.css", value="body{}")

        stats = engine.init()

        assert stats["downloaded"] == 1
        assert manifest.as_dict() == {"assets/a.css": sha256_digest(b"body{}")}
        assert snapshot.read() == remote
        assert local.list_keys() == []

    def test_exclude(self, engine, mock_client, manifest):
        mock_client.list_assets.return_value = listing(
            "assets/a.css", "config/settings_data.json"
        )
        mock_client.get_asset.return_value = Asset(key="assets/a.css", value="x")

        engine.init(exclude=r"^config/")

        mock_client.get_asset.assert_called_once_with("assets/a.css")
        assert list(manifest.as_dict()) == ["assets/a.css"]


class TestDownload(EngineTestBase):
    """Tests for download."""

    def test_download_everything(self, engine, mock_client, local, snapshot, manifest):
        remote = listing("assets/a.css", "assets/logo.png")
        mock_client.list_assets.return_value = remote
        mock_client.get_asset.side_effect = [
            Asset(key="assets/a.css", value="body{}\r\n"),
            Asset(key="assets/logo.png", attachment=b"\x89PNG\x00"),
        ]

        stats = engine.download()

        assert stats["downloaded"] == 2
        assert local.read_bytes("assets/a.css") == b"body{}\n"
        assert local.read_bytes("assets/logo.png") == b"\x89PNG\x00"
        assert manifest.digest_of("assets/logo.png") == sha256_digest(b"\x89PNG\x00")
        assert snapshot.read() == remote

    def test_download_keys_does_not_save_snapshot(self, engine, mock_client, snapshot):
        mock_client.get_asset.return_value = Asset(key="assets/a.css", value="x")

        engine.download(["assets/a.css"])

        mock_client.list_assets.assert_not_called()
        assert snapshot.exists() is False

    def test_failure_is_isolated(self, engine, mock_client, local, mock_output):
        """A rejected asset is reported and the rest still download."""
        mock_client.list_assets.return_value = listing("assets/a.css", "assets/b.css")
        mock_client.get_asset.side_effect = [
            ThemeTransferError(
                "Could not download assets/a.css",
                key="assets/a.css",
                status=404,
                request_id="req-1",
            ),
            Asset(key="assets/b.css", value="b"),
        ]

        stats = engine.download()

        assert stats["failed"] == 1
        assert stats["downloaded"] == 1
        assert local.exists("assets/b.css")
        assert not local.exists("assets/a.css")
        assert mock_output.error.called
        mock_output.warning.assert_any_call(
            "Error Details: {'status': 404, 'request_id': 'req-1'}"
        )

    def test_invalid_asset_data_aborts(self, engine, mock_client):
        mock_client.get_asset.side_effect = InvalidAssetDataError("no payload")

        with pytest.raises(InvalidAssetDataError):
            engine.download(["assets/a.css"])

    def test_invalid_key_warns(self, engine, mock_client, mock_output):
        stats = engine.download(["README.md"])

        assert stats["invalid"] == 1
        mock_client.get_asset.assert_not_called()
        mock_output.warning.assert_any_call(
            "'README.md' is not in a valid file for theme uploads"
        )


class TestImport(EngineTestBase):
    """Tests for import_changes."""

    def test_applies_remote_changes(
        self, engine, mock_client, local, snapshot, manifest
    ):
        snapshot.save(
            [
                Asset(key="assets/a.css", attributes={"size": 1}),
                Asset(key="assets/gone.css"),
                Asset(key="layout/theme.liquid"),
            ]
        )
        local.write_bytes("assets/gone.css", b"old")
        manifest.record("assets/gone.css", "digest")
        remote = [
            Asset(key="assets/a.css", attributes={"size": 2}),
            Asset(key="layout/theme.liquid"),
            Asset(key="assets/new.css"),
        ]
        mock_client.list_assets.return_value = remote
        mock_client.get_asset.side_effect = lambda key: Asset(key=key, value=key)

        stats = engine.import_changes()

        assert [c.args[0] for c in mock_client.get_asset.call_args_list] == [
            "assets/a.css",
            "assets/new.css",
        ]
        assert stats["downloaded"] == 2
        assert stats["deleted"] == 1
        assert not local.exists("assets/gone.css")
        assert manifest.digest_of("assets/gone.css") is None
        assert snapshot.read() == remote

    def test_remote_delete_without_local_copy(
        self, engine, mock_client, snapshot, manifest
    ):
        """The digest of a remotely deleted asset is dropped even with no local file."""
        snapshot.save(listing("assets/a.css", "assets/gone.css"))
        manifest.record("assets/gone.css", "digest")
        mock_client.list_assets.return_value = listing("assets/a.css")

        stats = engine.import_changes()

        assert manifest.digest_of("assets/gone.css") is None
        assert stats["deleted"] == 0

    def test_nothing_to_import(self, engine, mock_client, snapshot):
        remote = listing("assets/a.css")
        snapshot.save(remote)
        mock_client.list_assets.return_value = remote

        stats = engine.import_changes()

        mock_client.get_asset.assert_not_called()
        assert sum(stats.values()) == 0


class TestUpload(EngineTestBase):
    """Tests for upload and the manifest skip."""

    def test_unchanged_file_uploaded_once(self, engine, mock_client, local):
        local.write_bytes("assets/a.css", b"body{}")

        first = engine.upload(["assets/a.css"])
        second = engine.upload(["assets/a.css"])

        assert first["uploaded"] == 1
        assert second["skipped"] == 1
        assert mock_client.put_asset.call_count == 1

    def test_skip_is_reported(self, engine, local, mock_output):
        local.write_bytes("assets/a.css", b"body{}")
        engine.upload(["assets/a.css"])

        engine.upload(["assets/a.css"])

        message = mock_output.warning.call_args.args[0]
        assert message.startswith("[")
        assert message.endswith("Skipped: assets/a.css")

    def test_force_uploads_unchanged(self, engine, mock_client, local):
        local.write_bytes("assets/a.css", b"body{}")
        engine.upload(["assets/a.css"])

        engine.upload(["assets/a.css"], force=True)

        assert mock_client.put_asset.call_count == 2

    def test_text_and_binary_payloads(self, engine, mock_client, local):
        local.write_bytes("assets/a.css", b"body{}")
        local.write_bytes("assets/logo.png", b"\x89PNG\x00\x01")

        engine.upload()

        sent = {c.args[0].key: c.args[0] for c in mock_client.put_asset.call_args_list}
        assert sent["assets/a.css"].value == "body{}"
        assert sent["assets/a.css"].attachment is None
        assert sent["assets/logo.png"].attachment == b"\x89PNG\x00\x01"
        assert sent["assets/logo.png"].value is None

    def test_upload_all_skips_non_theme_files(self, engine, mock_client, local):
        local.write_bytes("assets/a.css", b"a")
        local.write_bytes("notes.txt", b"n")

        engine.upload()

        assert [c.args[0].key for c in mock_client.put_asset.call_args_list] == [
            "assets/a.css"
        ]

    def test_ignored_file_skipped(
        self, mock_client, local, manifest, snapshot, mock_output
    ):
        engine = ThemeSync(
            client=mock_client,
            local=local,
            manifest=manifest,
            snapshot=snapshot,
            policy=AssetPolicy(ignore_patterns=[r"settings_data\.json$"]),
            output=mock_output,
        )
        local.write_bytes("config/settings_data.json", b"{}")

        stats = engine.upload(["config/settings_data.json"])

        assert stats["skipped"] == 1
        mock_client.put_asset.assert_not_called()
        assert mock_output.warning.call_args.args[0].endswith(
            "Skipped: config/settings_data.json"
        )

    def test_missing_file_fails(self, engine, mock_client):
        stats = engine.upload(["assets/missing.css"])

        assert stats["failed"] == 1
        mock_client.put_asset.assert_not_called()

    def test_rejected_upload_not_recorded(self, engine, mock_client, local, manifest):
        local.write_bytes("templates/index.liquid", b"{{ broken")
        mock_client.put_asset.side_effect = ThemeTransferError(
            "Could not upload templates/index.liquid",
            status=422,
            errors="Liquid syntax error",
        )

        stats = engine.upload(["templates/index.liquid"])

        assert stats["failed"] == 1
        assert manifest.digest_of("templates/index.liquid") is None


class TestExport(EngineTestBase):
    """Tests for export."""

    def test_drift_blocks_all_mutations(self, engine, mock_client, snapshot, local):
        snapshot.save(listing("assets/a.css"))
        mock_client.list_assets.return_value = listing("assets/a.css", "assets/b.css")
        local.write_bytes("assets/a.css", b"changed")

        with pytest.raises(RemoteDriftConflictError) as exc_info:
            engine.export()

        assert [a.key for a in exc_info.value.changes.created] == ["assets/b.css"]
        mock_client.put_asset.assert_not_called()
        mock_client.delete_asset.assert_not_called()

    def test_export_pushes_local_state(self, engine, mock_client, snapshot, local):
        remote = listing("assets/a.css", "assets/old.css")
        snapshot.save(remote)
        mock_client.list_assets.return_value = remote
        local.write_bytes("assets/a.css", b"body{}")

        stats = engine.export()

        mock_client.delete_asset.assert_called_once_with("assets/old.css")
        assert mock_client.put_asset.call_args.args[0].key == "assets/a.css"
        assert stats["deleted"] == 1
        assert stats["uploaded"] == 1
        assert mock_client.list_assets.call_count == 2

    def test_dry_run(self, engine, mock_client, snapshot, local, manifest):
        remote = listing("assets/a.css", "assets/old.css")
        snapshot.save(remote)
        mock_client.list_assets.return_value = remote
        local.write_bytes("assets/a.css", b"body{}")

        stats = engine.export(dry_run=True)

        assert stats["deleted"] == 1
        assert stats["uploaded"] == 1
        mock_client.put_asset.assert_not_called()
        mock_client.delete_asset.assert_not_called()
        assert mock_client.list_assets.call_count == 1
        assert manifest.as_dict() == {}


class TestReplaceAndRemove(EngineTestBase):
    """Tests for replace and remove."""

    def test_replace_keys_deletes_then_uploads(self, engine, mock_client, local, manifest):
        local.write_bytes("assets/a.css", b"body{}")
        manifest.record("assets/a.css", sha256_digest(b"body{}"))
        parent = Mock()
        parent.attach_mock(mock_client.delete_asset, "delete_asset")
        parent.attach_mock(mock_client.put_asset, "put_asset")

        engine.replace(["assets/a.css"])

        assert [c[0] for c in parent.mock_calls] == ["delete_asset", "put_asset"]

    def test_replace_everything(self, engine, mock_client, local):
        mock_client.list_assets.return_value = listing("assets/a.css", "assets/old.css")
        local.write_bytes("assets/a.css", b"a")

        stats = engine.replace()

        mock_client.delete_asset.assert_called_once_with("assets/old.css")
        assert stats["uploaded"] == 1

    def test_remove(self, engine, mock_client, manifest):
        manifest.record("assets/a.css", "digest")

        stats = engine.remove(["assets/a.css", "assets/b.css"])

        assert mock_client.delete_asset.call_args_list == [
            call("assets/a.css"),
            call("assets/b.css"),
        ]
        assert stats["deleted"] == 2
        assert manifest.digest_of("assets/a.css") is None

    def test_remove_failure_keeps_manifest(self, engine, mock_client, manifest):
        manifest.record("assets/a.css", "digest")
        mock_client.delete_asset.side_effect = ThemeTransferError(
            "Could not remove assets/a.css", status=403
        )

        stats = engine.remove(["assets/a.css"])

        assert stats["failed"] == 1
        assert manifest.digest_of("assets/a.css") == "digest"


class TestThrottling(EngineTestBase):
    """Tests for the rate limiter hook."""

    def test_naps_before_call_when_budget_low(
        self, mock_client, local, manifest, snapshot, mock_output
    ):
        limiter = Mock(spec=RateLimiter)
        limiter.needs_sleep.return_value = True
        limiter.usage.return_value = "[API Limit: 38/40]"
        engine = ThemeSync(
            client=mock_client,
            local=local,
            manifest=manifest,
            snapshot=snapshot,
            rate_limiter=limiter,
            output=mock_output,
        )

        engine.remove(["assets/a.css"])

        mock_output.removed.assert_any_call(NAPTIME_MESSAGE)
        limiter.throttle.assert_called_once()
        status = mock_output.success.call_args_list[0].args[0]
        assert "[API Limit: 38/40] Removed: assets/a.css" in status

    def test_no_nap_with_budget(
        self, mock_client, local, manifest, snapshot, mock_output
    ):
        limiter = Mock(spec=RateLimiter)
        limiter.needs_sleep.return_value = False
        limiter.usage.return_value = "[API Limit: 1/40]"
        engine = ThemeSync(
            client=mock_client,
            local=local,
            manifest=manifest,
            snapshot=snapshot,
            rate_limiter=limiter,
            output=mock_output,
        )

        engine.remove(["assets/a.css"])

        limiter.throttle.assert_not_called()


class TestChanges(EngineTestBase):
    """Tests for drift detection helpers."""

    def test_changes_without_snapshot(self, engine, mock_client):
        mock_client.list_assets.return_value = listing("assets/a.css")

        changes = engine.changes()

        assert [a.key for a in changes.created] == ["assets/a.css"]

    def test_ensure_no_drift_passes(self, engine, mock_client, snapshot):
        snapshot.save(listing("assets/a.css"))
        mock_client.list_assets.return_value = listing("assets/a.css")

        engine.ensure_no_drift()

    def test_display_no_changes(self, engine, mock_output):
        engine.display_changes(engine.changes([]))

        mock_output.success.assert_called_once_with("\nNo changes.")
