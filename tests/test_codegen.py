"""Tests for code generation and artifact writing."""

from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

import pytest

from playmaster.codegen import GENERATED_DIR, GENERATED_MARKER, generate, write_artifacts, writer
from playmaster.codegen.flutter.dart import dart_string
from playmaster.codegen.flutter.support import render_entrypoint
from playmaster.errors import GenerationError, LoadError

from tests.conftest import LOGIN_TEST_CONTENT

if TYPE_CHECKING:
    from collections.abc import Callable

if TYPE_CHECKING:
    from pytest_mock import MockerFixture

    from playmaster.core import ProjectLoader

SUITE_PATH = GENERATED_DIR / 'first_time_user_experience_test.dart'

STEPS_TEST_CONTENT = '''
name: Steps
vars:
  price: "$5 'off'"
tests:
  - name: All steps
    description: Uses ${price}
    steps:
      - wait_for:
          delay: 250
      - wait_for:
          progress: radial
      - wait_for:
          progress: linear
          timeout: 1000
      - wait_for:
          text: Ready
          timeout: 200
      - match:
          text: ${price}
      - match:
          screenshot: home
'''


def test_generate_artifact_set(project_loader: 'Callable[..., ProjectLoader]') -> None:
    """Render every artifact of the sample project."""
    artifacts = generate(project_loader().load())

    assert list(artifacts) == sorted([
        GENERATED_DIR / 'all_tests.dart',
        GENERATED_DIR / 'common_vars.dart',
        SUITE_PATH,
        GENERATED_DIR / 'helpers.dart',
        PurePosixPath('test_driver', 'integration_test.dart'),
    ])

    for path, content in artifacts.items():
        assert content.startswith(GENERATED_MARKER + '\n'), path


def test_generate_end_to_end(project_loader: 'Callable[..., ProjectLoader]') -> None:
    """Compile the login flow with resolved literals only."""
    artifacts = generate(project_loader().load())

    constants = artifacts[GENERATED_DIR / 'common_vars.dart']
    assert 'class Common {' in constants
    assert "  static const validEmail = 'qa@test.com';" in constants

    suite = artifacts[SUITE_PATH]
    assert '${' not in suite
    assert "import 'package:sample_app/main.dart' as app;" in suite
    assert "group('First Time User Experience', () {" in suite
    assert "testWidgets('Successful Login', (tester) async {" in suite
    assert "await tester.enterText(find.byPlaceholder('Email'), 'qa@test.com');" in suite
    assert "await tester.enterText(find.byPlaceholder('Password'), 'password123');" in suite
    assert "await tester.tap(find.text('Sign In'), kind: PointerDeviceKind.mouse);" in suite
    assert "  find.text('Welcome')," in suite
    assert '  timeout: const Duration(milliseconds: 5000),' in suite
    assert '// User logs in with valid credentials' in suite

    markers = [line.strip() for line in suite.splitlines() if 'markStep(' in line]
    assert markers == [f'markStep({index});' for index in range(6)]


def test_generate_step_mapping(project_loader: 'Callable[..., ProjectLoader]') -> None:
    """Compile every step kind with its bounded waits."""
    artifacts = generate(project_loader({'feature_test/steps.yaml': STEPS_TEST_CONTENT}).load())

    suite = artifacts[GENERATED_DIR / 'steps_test.dart']
    assert '${' not in suite
    assert "  const price = '\\$5 \\'off\\'';" in suite
    assert '// Uses $5 \'off\'' in suite
    assert 'await tester.pump(const Duration(milliseconds: 250));' in suite
    assert '  find.byType(CircularProgressIndicator),' in suite
    assert '  timeout: const Duration(milliseconds: 30000),' in suite
    assert '  find.byType(LinearProgressIndicator),' in suite
    assert '  timeout: const Duration(milliseconds: 1000),' in suite
    assert '  timeout: const Duration(milliseconds: 200),' in suite
    assert "expect(find.text('\\$5 \\'off\\''), findsOneWidget);" in suite
    assert "  'steps_test',\n        'home',\n" in suite

    entrypoint = artifacts[GENERATED_DIR / 'all_tests.dart']
    assert "import 'steps_test.dart' as suite_steps_test;" in entrypoint


def test_generate_is_deterministic(project_loader: 'Callable[..., ProjectLoader]') -> None:
    """Render byte-identical artifacts from the same inputs."""
    loader = project_loader({'feature_test/steps.yaml': STEPS_TEST_CONTENT})

    assert generate(loader.load()) == generate(loader.load())


@pytest.mark.parametrize('step, pattern', (
    pytest.param('tap: {}', 'Selector needs one of: text, placeholder', id='tap'),
    pytest.param('type: {by: {}, value: x}', 'Selector needs one of: text, placeholder', id='type'),
    pytest.param('wait_for: {timeout: 10}', 'wait_for needs one of', id='wait_for'),
    pytest.param('match: {}', 'match needs one of', id='match'),
))
def test_generate_ambiguous_step(project_loader: 'Callable[..., ProjectLoader]',
                                 step: str, pattern: str) -> None:
    """Reject steps with no populated alternative, naming case and step."""
    content = LOGIN_TEST_CONTENT + f'      - {step}\n'
    project = project_loader({'feature_test/login.yaml': content}).load()

    with pytest.raises(GenerationError, match=pattern) as error:
        generate(project)

    assert error.value.context['filename'] == 'feature_test/login.yaml'
    assert error.value.context['case_name'] == 'Successful Login'
    assert error.value.context['step_num'] == 6
    assert "in case 'Successful Login', step 7" in str(error.value)


@pytest.mark.parametrize('value, expected', (
    ('plain', "'plain'"),
    ("it's", "'it\\'s'"),
    ('${x} $y', "'\\${x} \\$y'"),
    ('back\\slash', "'back\\\\slash'"),
    ('two\nlines', "'two\\nlines'"),
))
def test_dart_string(value: str, expected: str) -> None:
    """Escape Dart string literals."""
    assert dart_string(value) == expected


def test_render_entrypoint() -> None:
    """Import and run every suite in order."""
    content = render_entrypoint(['b_test', 'a_test'])

    assert content.splitlines() == [
        GENERATED_MARKER,
        "import 'b_test.dart' as suite_b_test;",
        "import 'a_test.dart' as suite_a_test;",
        '',
        'void main() {',
        '  suite_b_test.main();',
        '  suite_a_test.main();',
        '}',
    ]


def test_write_artifacts(project_loader: 'Callable[..., ProjectLoader]') -> None:
    """Write the artifact set and drop stale generated files."""
    project = project_loader().load()
    root = project.root

    stale = root / GENERATED_DIR / 'removed_test.dart'
    stale.parent.mkdir(parents=True)
    stale.write_text('old')

    written = write_artifacts(root, generate(project))

    assert root / SUITE_PATH in written
    assert (root / SUITE_PATH).read_text().startswith(GENERATED_MARKER)
    assert (root / 'test_driver' / 'integration_test.dart').is_file()
    assert not stale.exists()
    assert not any(path.name.startswith('.playmaster-gen-') for path in root.iterdir())


def test_write_artifacts_failure(project_loader: 'Callable[..., ProjectLoader]',
                                 mocker: 'MockerFixture') -> None:
    """Keep the previous artifact set when writing fails."""
    project = project_loader().load()
    root = project.root

    previous = root / SUITE_PATH
    previous.parent.mkdir(parents=True)
    previous.write_text('previous')

    mocker.patch.object(Path, 'write_text', side_effect=OSError('disk full'))

    with pytest.raises(GenerationError, match='disk full'):
        write_artifacts(root, generate(project))

    mocker.stopall()

    assert previous.read_text() == 'previous'
    assert sorted(path.name for path in (root / GENERATED_DIR).iterdir()) == [SUITE_PATH.name]
    assert not any(path.name.startswith('.playmaster-gen-') for path in root.iterdir())


def test_write_artifacts_rejects_escaping_paths(tmp_path: Path) -> None:
    """Refuse artifact paths outside the project."""
    with pytest.raises(GenerationError, match='escapes the project'):
        write_artifacts(tmp_path, {PurePosixPath('..', 'evil.dart'): ''})


@pytest.mark.parametrize('failing_call', (
    pytest.param(2, id='generated swap'),
    pytest.param(3, id='driver backup'),
    pytest.param(4, id='driver swap'),
))
def test_write_artifacts_commit_failure(project_loader: 'Callable[..., ProjectLoader]',
                                        mocker: 'MockerFixture', failing_call: int) -> None:
    """Restore the previous artifact set when moving it into place fails."""
    project = project_loader().load()
    root = project.root

    previous = root / SUITE_PATH
    previous.parent.mkdir(parents=True)
    previous.write_text('previous')
    driver = root / 'test_driver' / 'integration_test.dart'
    driver.parent.mkdir()
    driver.write_text('previous driver')

    replace = writer.os.replace
    calls = []

    def fail_once(source: Path, target: Path) -> None:
        calls.append(source)
        if len(calls) == failing_call:
            raise OSError('device busy')
        replace(source, target)

    mocker.patch('playmaster.codegen.writer.os.replace', side_effect=fail_once)

    with pytest.raises(GenerationError, match='device busy'):
        write_artifacts(root, generate(project))

    mocker.stopall()

    assert previous.read_text() == 'previous'
    assert sorted(path.name for path in (root / GENERATED_DIR).iterdir()) == [SUITE_PATH.name]
    assert driver.read_text() == 'previous driver'
    assert not any(path.name.startswith('.playmaster-gen-') for path in root.iterdir())


@pytest.mark.parametrize('replacements', (
    pytest.param({'name: Successful Login': 'name: Login ${validPassword}'}, id='case name'),
    pytest.param({'name: First Time User Experience': 'name: Users of ${Common.validEmail}'}, id='file name'),
))
def test_generate_rejects_references_in_names(project_loader: 'Callable[..., ProjectLoader]',
                                              replacements: dict[str, str]) -> None:
    """Never let a reference token reach the suite and case names."""
    content = LOGIN_TEST_CONTENT
    for old, new in replacements.items():
        content = content.replace(old, new)

    with pytest.raises(LoadError, match=r'Variable reference \$\{.+\} is not allowed in a name') as error:
        generate(project_loader({'feature_test/login.yaml': content}).load())

    assert error.value.filename == 'feature_test/login.yaml'
