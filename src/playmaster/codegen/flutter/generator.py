"""Flutter integration test generator."""

from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from playmaster.codegen.base import GENERATED_DIR, GENERATED_MARKER, CodeGenerator, register_generator
from playmaster.names import to_snake_case
from playmaster.schema import ProjectType

from .dart import dart_comment, dart_string
from .steps import INDENT, StepCompiler
from .support import DRIVER, HELPERS, render_entrypoint

if TYPE_CHECKING:
    from playmaster.codegen.base import Artifacts
    from playmaster.core import FeatureSource, Project, VariablesSource

DRIVER_PATH = PurePosixPath('test_driver', 'integration_test.dart')


@register_generator
class FlutterGenerator(CodeGenerator):
    """Renders `flutter_test` integration suites.

    Produces, under `integration_test/generated/`, one constants file
    per variable file, one suite per test file, the shared helpers and
    an entry point; plus the integration driver under `test_driver/`.
    """

    project_type = ProjectType.FLUTTER

    def render(self, project: 'Project') -> 'Artifacts':
        """Render the artifact set of a project."""
        artifacts: Artifacts = {
            GENERATED_DIR / 'helpers.dart': HELPERS,
            DRIVER_PATH: DRIVER,
        }

        imports = []
        for source in project.variables:
            filename = self.vars_filename(source)
            artifacts[GENERATED_DIR / filename] = self.render_vars(source)
            imports.append(filename)

        suites = []
        for source in project.features:
            suite = source.feature.suite_name
            artifacts[GENERATED_DIR / f'{suite}.dart'] = self.render_suite(
                project,
                source,
                imports=imports,
            )
            suites.append(suite)

        artifacts[GENERATED_DIR / 'all_tests.dart'] = render_entrypoint(suites)

        return artifacts

    @staticmethod
    def vars_filename(source: 'VariablesSource') -> str:
        """Return the constants file name of a variable file."""
        return f'{to_snake_case(source.namespace)}_vars.dart'

    @staticmethod
    def render_vars(source: 'VariablesSource') -> str:
        """Render the constants class of a variable file."""
        lines = [
            GENERATED_MARKER,
            f'// Source: {source.path.name}',
            '',
            f'class {source.namespace} {{',
        ]
        lines.extend(
            f'  static const {key} = {dart_string(value)};'
            for key, value in sorted(source.values.items())
        )
        lines.append('}')

        return '\n'.join(lines) + '\n'

    def render_suite(self, project: 'Project', source: 'FeatureSource', *,
                     imports: list[str]) -> str:
        """Render the test suite of a test file.

        Raises:
            GenerationError: If a step cannot be compiled.
        """
        feature = source.feature
        resolver = project.resolver(feature)
        compiler = StepCompiler(
            resolver,
            feature.suite_name,
            filename=project.relative(source.path),
        )

        lines = [
            GENERATED_MARKER,
            f'// Source: {project.relative(source.path)}',
            "import 'dart:ui';",
            '',
            "import 'package:flutter/material.dart';",
            "import 'package:flutter_test/flutter_test.dart';",
            "import 'package:integration_test/integration_test.dart';",
            f"import 'package:{project.app_name}/main.dart' as app;",
            '',
            "import 'helpers.dart';",
        ]
        lines.extend(f"import '{filename}';" for filename in imports)
        lines.append('')

        if feature.description:
            lines.extend(dart_comment(compiler.substitute(feature.description)))

        lines.append('void main() {')
        lines.append('  IntegrationTestWidgetsFlutterBinding.ensureInitialized();')
        if feature.local_vars:
            lines.append('')
            lines.extend(
                f'  const {key} = {dart_string(value)};'
                for key, value in sorted(feature.local_vars.items())
            )
        lines.append('')
        lines.append(f'  group({dart_string(feature.name)}, () {{')

        for number, case in enumerate(feature.tests):
            if number:
                lines.append('')
            if case.description:
                lines.extend(dart_comment(compiler.substitute(case.description, case=case), '    '))
            lines.append(f'    testWidgets({dart_string(case.name)}, (tester) async {{')
            lines.append(f'{INDENT}app.main();')
            lines.append(f'{INDENT}await tester.pumpAndSettle();')
            lines.append('')
            lines.extend(compiler.compile_case(case))
            lines.append('    });')

        lines.append('  });')
        lines.append('}')

        return '\n'.join(lines) + '\n'
