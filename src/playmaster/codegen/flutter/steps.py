"""Step compilation to Flutter integration test statements.

Every step compiles to a fixed block of statements. Text payloads are
substituted with resolved literals before they are emitted, so the
generated sources never contain reference tokens.
"""

from typing import TYPE_CHECKING

from playmaster.core import UnresolvedReference
from playmaster.errors import ErrorContext, GenerationError
from playmaster.schema import MatchStep, ProgressKind, TapStep, TypeStep, WaitForStep

from .dart import dart_duration, dart_string

if TYPE_CHECKING:
    from playmaster.core import ReferenceResolver
    from playmaster.schema import Selector, Step, TestCase

#: Default bounded waits, in milliseconds.
TEXT_TIMEOUT = 5000
PROGRESS_TIMEOUT = 30000

PROGRESS_WIDGETS = {
    ProgressKind.LINEAR: 'LinearProgressIndicator',
    ProgressKind.RADIAL: 'CircularProgressIndicator',
}

INDENT = '      '


class StepCompiler:
    """Compiles the steps of one test file.

    Attributes:
        resolver: Reference resolver scoped to the test file.
        suite_name: Generated suite name, used for golden file folders.
        filename: Source file name reported in errors.
    """

    def __init__(self, resolver: 'ReferenceResolver', suite_name: str, *,
                 filename: str | None = None) -> None:
        """Initialize a compiler for one test file.

        Args:
            resolver: Reference resolver scoped to the test file.
            suite_name: Generated suite name.
            filename: Source file name reported in errors.
        """
        self.resolver = resolver
        self.suite_name = suite_name
        self.filename = filename

    def compile_case(self, case: 'TestCase') -> list[str]:
        """Compile every step of a test case.

        Returns:
            Indented Dart statement lines.

        Raises:
            GenerationError: If a step is ambiguous or a token fails.
        """
        lines: list[str] = []
        for index, step in enumerate(case.steps):
            if lines:
                lines.append('')
            lines.append(f'{INDENT}markStep({index});')
            lines.extend(
                f'{INDENT}{line}'
                for line in self.compile_step(step, case=case, index=index)
            )

        return lines

    def compile_step(self, step: 'Step', *, case: 'TestCase', index: int) -> list[str]:
        """Compile a single step into unindented statements."""
        match step:
            case WaitForStep():
                return self._wait_for(step, case=case, index=index)
            case TapStep():
                return self._tap(step, case=case, index=index)
            case TypeStep():
                return self._type(step, case=case, index=index)
            case MatchStep():
                return self._match(step, case=case, index=index)

        raise self.error('Unsupported step', case=case, index=index, element=step)

    def _wait_for(self, step: WaitForStep, *, case: 'TestCase', index: int) -> list[str]:
        payload = step.wait_for
        match payload.kind:
            case 'text':
                timeout = payload.timeout or TEXT_TIMEOUT
                return [
                    'await tester.pumpUntilFound(',
                    f'  find.text({self.literal(payload.text, case=case, index=index)}),',
                    f'  timeout: {dart_duration(timeout)},',
                    ');',
                ]
            case 'delay':
                return [f'await tester.pump({dart_duration(payload.delay)});']
            case 'progress':
                timeout = payload.timeout or PROGRESS_TIMEOUT
                widget = PROGRESS_WIDGETS[payload.progress]
                return [
                    'await tester.pumpUntilProgressCompleted(',
                    f'  find.byType({widget}),',
                    f'  timeout: {dart_duration(timeout)},',
                    ');',
                ]

        raise self.error(
            'wait_for needs one of: text, delay, progress',
            case=case, index=index, element={'wait_for': payload.model_dump()},
        )

    def _tap(self, step: TapStep, *, case: 'TestCase', index: int) -> list[str]:
        finder = self.finder(step.tap, case=case, index=index, element={'tap': step.tap.model_dump()})
        return [
            'await tester.pumpAndSettle();',
            f'expect({finder}, findsOneWidget);',
            f'await tester.tap({finder}, kind: PointerDeviceKind.mouse);',
            'await tester.pumpAndSettle();',
        ]

    def _type(self, step: TypeStep, *, case: 'TestCase', index: int) -> list[str]:
        payload = step.type_
        finder = self.finder(
            payload.by,
            case=case,
            index=index,
            element={'type': payload.model_dump()},
        )
        value = self.literal(payload.value, case=case, index=index)
        return [
            'await tester.pumpAndSettle();',
            f'expect({finder}, findsOneWidget);',
            f'await tester.enterText({finder}, {value});',
            'await tester.pumpAndSettle();',
        ]

    def _match(self, step: MatchStep, *, case: 'TestCase', index: int) -> list[str]:
        payload = step.match
        match payload.kind:
            case 'text':
                text = self.literal(payload.text, case=case, index=index)
                return [
                    'await tester.pumpAndSettle();',
                    f'expect(find.text({text}), findsOneWidget);',
                ]
            case 'screenshot':
                name = self.literal(payload.screenshot, case=case, index=index)
                return [
                    'await tester.compareScreenshot(',
                    f'  {dart_string(self.suite_name)},',
                    f'  {name},',
                    ');',
                ]

        raise self.error(
            'match needs one of: text, screenshot',
            case=case, index=index, element={'match': payload.model_dump()},
        )

    def finder(self, selector: 'Selector', *, case: 'TestCase', index: int,
               element: object) -> str:
        """Compile a selector into a Dart finder expression.

        Raises:
            GenerationError: If neither selector field is populated.
        """
        match selector.kind:
            case 'text':
                return f'find.text({self.literal(selector.text, case=case, index=index)})'
            case 'placeholder':
                return f'find.byPlaceholder({self.literal(selector.placeholder, case=case, index=index)})'

        raise self.error(
            'Selector needs one of: text, placeholder',
            case=case, index=index, element=element,
        )

    def literal(self, value: str | None, *, case: 'TestCase', index: int) -> str:
        """Substitute references in a value and quote it for Dart."""
        return dart_string(self.substitute(value or '', case=case, index=index))

    def substitute(self, value: str, *, case: 'TestCase | None' = None,
                   index: int | None = None) -> str:
        """Substitute references in a value.

        Raises:
            GenerationError: If a token cannot be resolved.
        """
        try:
            return self.resolver.substitute(value)
        except UnresolvedReference as base:
            raise self.error(f'Unresolved reference {base}', case=case, index=index) from base

    def error(self, message: str, *, case: 'TestCase | None', index: int | None,
              element: object = None) -> GenerationError:
        """Build a generation error located at a step."""
        context = ErrorContext(filename=self.filename)
        if case is not None:
            context['case_name'] = case.name
            context['step_num'] = index
        if element is not None:
            context['element'] = element

        return GenerationError(message, context=context)
