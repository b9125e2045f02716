"""Static support sources of generated Flutter suites."""

from playmaster.codegen.base import GENERATED_MARKER

HELPERS = f"""{GENERATED_MARKER}
// ignore_for_file: avoid_print
import 'package:flutter/material.dart';
import 'package:flutter_test/flutter_test.dart';

/// Prefix of the step markers printed while a test runs.
const stepMarker = 'playmaster:step:';

/// Reports the index of the step about to run.
void markStep(int index) {{
  print(stepMarker + index.toString());
}}

/// Bounded waits and golden comparisons used by generated tests.
extension PlaymasterTester on WidgetTester {{
  /// Pumps until [finder] matches, failing after [timeout].
  Future<void> pumpUntilFound(
    Finder finder, {{
    Duration timeout = const Duration(seconds: 5),
    Duration step = const Duration(milliseconds: 100),
  }}) async {{
    final endTime = DateTime.now().add(timeout);
    while (DateTime.now().isBefore(endTime)) {{
      await pump(step);
      if (any(finder)) return;
    }}
    fail('Not found within ' + timeout.inMilliseconds.toString() + ' ms: ' + finder.toString());
  }}

  /// Pumps until every progress indicator matched by [finder] is done.
  ///
  /// An indicator is done when it is gone or its value reached 1.0.
  Future<void> pumpUntilProgressCompleted(
    Finder finder, {{
    Duration timeout = const Duration(seconds: 30),
    Duration step = const Duration(milliseconds: 100),
  }}) async {{
    final endTime = DateTime.now().add(timeout);
    while (DateTime.now().isBefore(endTime)) {{
      await pump(step);
      final pending = widgetList<ProgressIndicator>(finder).where(
        (widget) => widget.value == null || widget.value! < 1.0,
      );
      if (pending.isEmpty) return;
    }}
    fail('Progress not completed within ' + timeout.inMilliseconds.toString() + ' ms: ' + finder.toString());
  }}

  /// Compares the current render with a golden file.
  ///
  /// Golden files live in `integration_test/screenshots/<suite>/<name>.png`.
  Future<void> compareScreenshot(String suite, String name) async {{
    await pumpAndSettle();
    await expectLater(
      find.byType(WidgetsApp).first,
      matchesGoldenFile('../screenshots/' + suite + '/' + name + '.png'),
    );
  }}
}}

/// Finders by input placeholder.
extension PlaymasterFinders on CommonFinders {{
  /// Finds a [TextField] by its hint or label text.
  Finder byPlaceholder(String placeholder) {{
    return byWidgetPredicate(
      (widget) =>
          widget is TextField &&
          (widget.decoration?.hintText == placeholder ||
              widget.decoration?.labelText == placeholder),
      description: 'TextField with placeholder ' + placeholder,
    );
  }}
}}
"""

DRIVER = f"""{GENERATED_MARKER}
import 'package:integration_test/integration_test_driver.dart';

Future<void> main() => integrationDriver();
"""


def render_entrypoint(suites: list[str]) -> str:
    """Render the entry point running every generated suite.

    Args:
        suites: Suite names in declared order.
    """
    lines = [GENERATED_MARKER]
    lines.extend(f"import '{suite}.dart' as suite_{suite};" for suite in suites)
    lines.append('')
    lines.append('void main() {')
    lines.extend(f'  suite_{suite}.main();' for suite in suites)
    lines.append('}')

    return '\n'.join(lines) + '\n'
