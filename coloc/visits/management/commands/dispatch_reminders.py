import signal
import threading

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.utils.dateparse import parse_datetime


class Command(BaseCommand):
    help = 'Deliver visit reminders that are due now (one pass, or every interval with --loop)'

    def add_arguments(self, parser):
        parser.add_argument(
            '--at',
            help='ISO-8601 instant to dispatch for instead of now (e.g. 2025-03-08T10:02:00Z)',
        )
        parser.add_argument(
            '--loop',
            action='store_true',
            help='Keep running a pass every REMINDER_DISPATCH_INTERVAL until interrupted',
        )

    def handle(self, *args, **options):
        from visits.reminders import run_dispatch_pass

        now = None
        if options['at']:
            now = parse_datetime(options['at'])
            if now is None or now.tzinfo is None:
                raise CommandError('--at must be a timezone-aware ISO-8601 datetime')
            if options['loop']:
                raise CommandError('--at cannot be combined with --loop')

        if not options['loop']:
            self._report(run_dispatch_pass(now=now))
            return

        stop = threading.Event()
        for sig in (signal.SIGINT, signal.SIGTERM):
            signal.signal(sig, lambda *_: stop.set())

        interval = settings.REMINDER_DISPATCH_INTERVAL.total_seconds()
        self.stdout.write(f'Dispatching reminders every {interval:.0f}s (Ctrl+C to stop)')
        while not stop.is_set():
            self._report(run_dispatch_pass(should_stop=stop.is_set))
            stop.wait(interval)
        self.stdout.write('Stopped.')

    def _report(self, summary):
        if summary is None:
            self.stdout.write(self.style.WARNING('Another dispatch pass is running; skipped'))
        else:
            self.stdout.write(self.style.SUCCESS(f'Reminder dispatch: {summary}'))
