"""devportal entry point — test a plugin build against a GrayJay dev server.

Usage::

    python -m devportal                                  # auto-discover
    python -m devportal --dev-ip 192.168.1.100           # manual IP
    python -m devportal --dev-ip 100.100.1.57 --dev-port 11337
    python -m devportal --port 3000                      # local server port
    python -m devportal --skip-mdns                      # network scan only
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
import webbrowser

from devportal.config import HarnessConfig
from devportal.errors import MissingArtifacts, NoDeviceFound
from devportal.session import SessionDriver, SessionReport

logger = logging.getLogger("devportal")

RULE = "━" * 63


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="devportal",
        description="Inject a plugin build into a GrayJay dev server and smoke-test it",
    )
    parser.add_argument("--dev-ip", default=None, help="Dev server IP (skips discovery)")
    parser.add_argument("--dev-port", type=int, default=None, help="Dev server port (default: 11337)")
    parser.add_argument("--port", type=int, default=None, help="Local asset server port (default: 3000)")
    parser.add_argument("--skip-mdns", action="store_true", help="Skip mDNS, use network scan")
    parser.add_argument("--dist", default=None, help="Build output directory (default: dist)")
    parser.add_argument("--config", "-c", default=None, help="Path to a JSON config file")
    parser.add_argument("--no-browser", action="store_true", help="Do not open the dev portal")
    parser.add_argument(
        "--exit",
        action="store_true",
        help="Exit after the smoke test instead of serving until Ctrl+C",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def load_config(args: argparse.Namespace) -> HarnessConfig:
    config = HarnessConfig.load(args.config) if args.config else HarnessConfig()
    config.apply_env()

    # CLI overrides
    if args.dev_port:
        config.control_port = args.dev_port
    if args.port is not None:
        config.local_server_port = args.port
    if args.skip_mdns:
        config.skip_mdns = True
    if args.dist:
        config.artifact_dir = args.dist
    return config


def print_progress(done: int, total: int) -> None:
    end = "\n" if done == total else ""
    print(f"\r   Progress: {round(done / total * 100)}%", end=end, flush=True)


def print_summary(report: SessionReport) -> None:
    print(f"\n🧪 Testing Plugin Methods\n{RULE}")
    for method, result in report.method_results.items():
        mark = "✅" if result.success else "❌"
        print(f"   • {method}(): {mark}")
        if result.success and result.result is not None:
            print(f"      Result: {result.preview()}")
        elif result.error:
            print(f"      Error: {result.error[:200]}")
    if report.home_items is not None:
        print(f"      Videos: {report.home_items}")

    print("\n📋 Steps")
    for step in report.steps:
        print(f"   • {step.name}: {step.status} — {step.detail}")


def print_next_steps(report: SessionReport, serving: bool) -> None:
    print("\n✨ Testing environment ready!")
    print(f"   Dev portal: {report.portal_url}")
    print("\n📝 Next steps:")
    print("   1. Use the dev portal to test other methods")
    print("   2. Make changes to your source code")
    print('   3. Run "npm run build" to rebuild')
    print('   4. Click "Reload" in the dev portal to test changes')
    if serving:
        print("\n⚠️  Press Ctrl+C to stop the local server\n")


def print_hints(title: str, hints: tuple[str, ...]) -> None:
    print(f"\n❌ {title}")
    print("\n💡 Make sure:")
    for hint in hints:
        print(f"   • {hint}")


async def run(args: argparse.Namespace, config: HarnessConfig) -> int:
    driver = SessionDriver(config)
    driver.discovery.prober.on_progress(print_progress)

    try:
        try:
            report = await driver.run(manual_host=args.dev_ip, manual_port=args.dev_port)
        except NoDeviceFound as exc:
            print_hints(f"{exc}. Exiting.", exc.hints)
            return 1
        except MissingArtifacts as exc:
            print_hints(str(exc), exc.hints)
            return 1

        print(f"\n📦 Plugin: {report.plugin_name} v{report.plugin_version}")
        print(f"   Device: {report.device.base_url}")
        print(f"   Script URL: {report.script_url}")
        print_summary(report)

        if not args.no_browser:
            print("\n🌐 Opening dev portal in browser...")
            webbrowser.open(report.portal_url)

        serving = not args.exit
        print_next_steps(report, serving)
        if serving:
            await asyncio.Event().wait()
        return 0
    finally:
        await driver.close()


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    level = logging.DEBUG if args.debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    config = load_config(args)
    print(f"\n╔{'═' * 64}╗\n║     GrayJay Plugin Testing Tool{' ' * 33}║\n╚{'═' * 64}╝")

    loop = asyncio.new_event_loop()
    main_task = loop.create_task(run(args, config))

    def _shutdown(sig: int) -> None:
        logger.info("Received signal %d — shutting down", sig)
        main_task.cancel()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _shutdown, sig)
        except (NotImplementedError, RuntimeError):
            pass  # Windows: KeyboardInterrupt handles Ctrl+C

    exit_code = 1
    try:
        exit_code = loop.run_until_complete(main_task)
    except asyncio.CancelledError:
        print("\n\n👋 Shutting down...")
        exit_code = 0
    except KeyboardInterrupt:
        main_task.cancel()
        loop.run_until_complete(asyncio.gather(main_task, return_exceptions=True))
        print("\n\n👋 Shutting down...")
        exit_code = 0
    except Exception as exc:
        logger.exception("Unexpected error")
        print(f"\n❌ Error: {exc}")
        exit_code = 1
    finally:
        loop.close()
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
