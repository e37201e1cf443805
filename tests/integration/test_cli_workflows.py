"""
Integration tests for CLI end-to-end workflows.

Runs ``main()`` against a temporary library with online lookup disabled
and fpcalc hidden, so every fingerprint is a content hash.
"""

import json
import logging
import shutil
import tempfile
from pathlib import Path
from unittest.mock import call, patch

import pytest

from music_library.cli import main as cli_main
from music_library.cli.main import create_parser, main, setup_logging, validate_arguments
from music_library.core.config_manager import ConfigManager
from music_library.utils.error_handler import get_error_handler


class TestCLIWorkflows:
    """Integration tests for CLI workflows."""

    @pytest.fixture
    def temp_workspace(self):
        """Create temporary workspace with test files."""
        workspace = tempfile.mkdtemp()
        base = Path(workspace)

        music_dir = base / 'music'
        music_dir.mkdir()
        (music_dir / 'first song.mp3').write_bytes(b'fake mp3 content - artist1 - title1')
        (music_dir / 'second.flac').write_bytes(b'fake flac content - artist2 - title2')
        (music_dir / 'copy.mp3').write_bytes(b'fake mp3 content - artist1 - title1')
        (music_dir / 'notes.txt').write_bytes(b'not audio')

        yield {
            'base': base,
            'music': music_dir,
            'db': base / 'library' / 'songs.db',
            'blobs': base / 'library' / 'blobs',
        }

        shutil.rmtree(workspace, ignore_errors=True)

    @pytest.fixture(autouse=True)
    def isolated_environment(self, temp_workspace):
        """Fresh config manager without user settings; no fpcalc"""
        manager = ConfigManager(project_root=temp_workspace['base'],
                                user_config_dir=temp_workspace['base'] / 'user-config')
        with patch('music_library.cli.main.get_config_manager', return_value=manager), \
                patch('music_library.audio.fingerprinting.locate_tool', return_value=None):
            yield

    def run_cli(self, temp_workspace, capsys, *args):
        """Run main() with JSON output; returns (exit code, parsed stdout)"""
        argv = list(args) + [
            '--json', '--no-lookup',
            '--db', str(temp_workspace['db']),
            '--blob-root', str(temp_workspace['blobs']),
        ]
        capsys.readouterr()
        exit_code = main(argv)
        output = capsys.readouterr().out
        return exit_code, json.loads(output) if output.strip() else None

    def test_ingest_and_list(self, temp_workspace, capsys):
        music = temp_workspace['music']

        exit_code, results = self.run_cli(
            temp_workspace, capsys, str(music / 'first song.mp3'), str(music / 'second.flac'))

        assert exit_code == 0
        assert [entry['outcome'] for entry in results] == ['accept_new', 'accept_new']
        assert results[0]['song']['title'] == 'first song'
        assert results[0]['fingerprintKind'] == 'hash'

        exit_code, songs = self.run_cli(temp_workspace, capsys, '--mode', 'list')
        assert exit_code == 0
        assert {song['title'] for song in songs} == {'first song', 'second'}

    def test_duplicate_content_is_rejected(self, temp_workspace, capsys):
        music = temp_workspace['music']

        exit_code, results = self.run_cli(
            temp_workspace, capsys, str(music / 'first song.mp3'), str(music / 'copy.mp3'))

        assert exit_code == 0
        assert 'outcome' in results[0]
        assert results[1]['error']['code'] == 'DUPLICATE_SONG'
        assert results[1]['error']['details']['existingSong']['id'] == results[0]['song']['id']

    def test_user_metadata_options(self, temp_workspace, capsys):
        exit_code, results = self.run_cli(
            temp_workspace, capsys, str(temp_workspace['music'] / 'second.flac'),
            '--title', 'Given Title', '--artist', 'A feat. B', '--year', '2004', '--genre', 'House, Techno')

        assert exit_code == 0
        song_id = results[0]['song']['id']

        exit_code, songs = self.run_cli(temp_workspace, capsys, '--mode', 'show', song_id)
        assert songs[0]['title'] == 'Given Title'
        assert songs[0]['artists'] == ['A', 'B']
        assert songs[0]['year'] == 2004
        assert songs[0]['genre'] == ['House', 'Techno']

    def test_invalid_type_rejected(self, temp_workspace, capsys):
        exit_code, results = self.run_cli(temp_workspace, capsys, str(temp_workspace['music'] / 'notes.txt'))

        assert exit_code == 1
        assert results[0]['error']['code'] == 'INVALID_FILE_TYPE'

    def test_edit_and_delete(self, temp_workspace, capsys):
        _, results = self.run_cli(temp_workspace, capsys, str(temp_workspace['music'] / 'first song.mp3'))
        song_id = results[0]['song']['id']

        exit_code, songs = self.run_cli(temp_workspace, capsys, '--mode', 'edit', song_id, '--album', 'New LP')
        assert exit_code == 0
        assert songs[0]['album'] == 'New LP'

        exit_code, deleted = self.run_cli(temp_workspace, capsys, '--mode', 'delete', song_id)
        assert exit_code == 0
        assert deleted == [{'id': song_id, 'deleted': True}]

        exit_code, error = self.run_cli(temp_workspace, capsys, '--mode', 'show', song_id)
        assert exit_code == 1
        assert error['error']['code'] == 'SONG_NOT_FOUND'

    def test_regenerate_without_fpcalc(self, temp_workspace, capsys):
        self.run_cli(temp_workspace, capsys, str(temp_workspace['music'] / 'first song.mp3'))

        exit_code, summary = self.run_cli(temp_workspace, capsys, '--mode', 'regenerate')

        assert exit_code == 0
        assert summary['total'] == 1
        assert summary['processed'] == 0
        assert summary['results'][0]['error'] == 'Acoustic fingerprinting not available, kept hash'

    def test_enrich_with_lookup_disabled(self, temp_workspace, capsys):
        _, results = self.run_cli(temp_workspace, capsys, str(temp_workspace['music'] / 'first song.mp3'))
        song_id = results[0]['song']['id']

        exit_code, enriched = self.run_cli(temp_workspace, capsys, '--mode', 'enrich', song_id)

        assert exit_code == 0
        assert enriched[0]['enrichedFields'] == []

    def test_tools_mode_reports_missing_fpcalc(self, temp_workspace, capsys):
        with patch('music_library.utils.tool_checker.locate_tool', return_value=None):
            exit_code, report = self.run_cli(temp_workspace, capsys, '--mode', 'tools')

        assert exit_code == 1
        assert report['path'] is None
        assert report['install_hint']

    def write_config(self, temp_workspace, settings):
        config_path = temp_workspace['base'] / 'library.json'
        config_path.write_text(json.dumps(settings))
        return str(config_path)

    def test_config_file_ui_settings_are_used(self, temp_workspace, capsys):
        config_path = self.write_config(temp_workspace, {'ui': {'log_level': 'DEBUG', 'verbose_errors': True}})

        with patch('music_library.cli.main.setup_logging') as mock_setup, \
                patch('music_library.cli.main.get_error_handler', wraps=get_error_handler) as mock_handler:
            exit_code, error = self.run_cli(temp_workspace, capsys, '-c', config_path, '--mode', 'show', 'missing-id')

        assert exit_code == 1
        assert error['error']['code'] == 'SONG_NOT_FOUND'
        assert mock_setup.call_args == call('DEBUG', None)
        mock_handler.assert_called_once_with(True)

    def test_log_level_option_overrides_config(self, temp_workspace, capsys):
        config_path = self.write_config(temp_workspace, {'ui': {'log_level': 'DEBUG'}})

        with patch('music_library.cli.main.setup_logging') as mock_setup:
            exit_code, _ = self.run_cli(temp_workspace, capsys, '-c', config_path, '--log-level', 'ERROR',
                                        '--mode', 'list')

        assert exit_code == 0
        assert mock_setup.call_args == call('ERROR', None)

    def test_invalid_config_log_level_rejected(self, temp_workspace, capsys):
        config_path = self.write_config(temp_workspace, {'ui': {'log_level': 'LOUD'}})

        with patch('music_library.cli.main.setup_logging') as mock_setup:
            exit_code = main(['-c', config_path, '--mode', 'list', '--db', str(temp_workspace['db'])])

        assert exit_code == 1
        assert 'ui.log_level must be one of' in capsys.readouterr().err
        assert mock_setup.call_count == 1


class TestArgumentValidation:
    """Test CLI argument validation."""

    def test_ingest_requires_files(self):
        args = create_parser().parse_args([])
        assert not validate_arguments(args)

    def test_ingest_requires_existing_files(self, tmp_path):
        args = create_parser().parse_args([str(tmp_path / 'missing.mp3')])
        assert not validate_arguments(args)

    def test_song_modes_require_ids(self):
        args = create_parser().parse_args(['--mode', 'show'])
        assert not validate_arguments(args)

    def test_limit_must_be_positive(self):
        args = create_parser().parse_args(['--mode', 'list', '--limit', '0'])
        assert not validate_arguments(args)

    def test_list_needs_nothing(self):
        args = create_parser().parse_args(['--mode', 'list'])
        assert validate_arguments(args)

    def test_validation_failure_exit_code(self):
        assert main(['--mode', 'delete']) == 1


class TestSetupLogging:
    """Test root logger configuration."""

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root_logger = logging.getLogger()
        level = root_logger.level
        yield root_logger
        cli_main.setup_logging("WARNING")
        for handler in list(cli_main._installed_handlers):
            root_logger.removeHandler(handler)
            handler.close()
        cli_main._installed_handlers.clear()
        root_logger.setLevel(level)

    def test_repeated_calls_do_not_stack_handlers(self, restore_root_logger):
        setup_logging("INFO")
        handler_count = len(restore_root_logger.handlers)

        setup_logging("DEBUG")
        setup_logging("DEBUG")

        assert len(restore_root_logger.handlers) == handler_count
        assert restore_root_logger.level == logging.DEBUG

    def test_log_file_handler_replaced(self, restore_root_logger, tmp_path):
        setup_logging("INFO")
        handler_count = len(restore_root_logger.handlers)

        setup_logging("INFO", str(tmp_path / "library.log"))
        assert len(restore_root_logger.handlers) == handler_count + 1

        setup_logging("INFO")
        assert len(restore_root_logger.handlers) == handler_count

    def test_repeated_main_runs(self, restore_root_logger):
        main(['--mode', 'delete'])
        handler_count = len(restore_root_logger.handlers)

        main(['--mode', 'delete'])

        assert len(restore_root_logger.handlers) == handler_count
