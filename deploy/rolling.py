# deploy/rolling.py
"""
Rolling deployment helper.

    lugx-deploy [service|all] [image-tag]

Updates one deployment (or every service, one after another) to
lugx-gaming/<service>:<tag>, waits for the rollout and rolls back on failure.
"""
import argparse
import subprocess
import sys
import time
from typing import Callable, List, Optional, Sequence

from lugx_common.logging import get_logger

logger = get_logger(__name__)

SERVICES = ("frontend", "game-service", "order-service", "analytics-service")
IMAGE_REPO = "lugx-gaming"
ROLLOUT_TIMEOUT = "300s"
PAUSE_BETWEEN_SERVICES = 15


class RolloutFailed(Exception):
    pass


class Kubectl:
    def __init__(self, runner: Callable[..., subprocess.CompletedProcess] = subprocess.run, binary: str = "kubectl"):
        self.runner = runner
        self.binary = binary

    def __call__(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        cmd = [self.binary, *args]
        logger.debug(" ".join(cmd))
        return self.runner(cmd, capture_output=True, text=True, check=check)

    def jsonpath(self, service: str, path: str) -> str:
        out = self("get", "deployment", service, "-o", f"jsonpath={{{path}}}").stdout
        return (out or "").strip() or "0"


def update_service(kubectl: Kubectl, service: str, tag: str, clock: Callable[[], float] = time.time) -> str:
    """
    Set the image, stamp the revision annotation, wait for the rollout.
    Returns "<ready>/<desired>" on success; rolls back and raises RolloutFailed otherwise.
    """
    logger.info(f"Rolling update for {service}...")
    kubectl("set", "image", f"deployment/{service}", f"{service}={IMAGE_REPO}/{service}:{tag}")
    kubectl(
        "annotate", "deployment", service,
        f"deployment.kubernetes.io/revision={int(clock())}", "--overwrite",
    )

    logger.info(f"Waiting for {service} rollout...")
    status = kubectl("rollout", "status", f"deployment/{service}", f"--timeout={ROLLOUT_TIMEOUT}", check=False)
    if status.returncode != 0:
        logger.error(f"{service} rollout failed, rolling back")
        kubectl("rollout", "undo", f"deployment/{service}", check=False)
        raise RolloutFailed(service)

    ready = kubectl.jsonpath(service, ".status.readyReplicas")
    desired = kubectl.jsonpath(service, ".status.replicas")
    logger.info(f"{service} rolled out successfully: {ready}/{desired} replicas ready")
    return f"{ready}/{desired}"


def deploy(
    kubectl: Kubectl,
    target: str,
    tag: str,
    sleep: Optional[Callable[[float], None]] = None,
    pause: float = PAUSE_BETWEEN_SERVICES,
) -> List[str]:
    sleep = sleep or time.sleep
    services: Sequence[str] = SERVICES if target == "all" else (target,)
    done = []
    for i, service in enumerate(services):
        update_service(kubectl, service, tag)
        done.append(service)
        if target == "all" and i < len(services) - 1:
            logger.info(f"Waiting {pause:g} seconds before next service...")
            sleep(pause)
    return done


def main(argv: Optional[Sequence[str]] = None, kubectl: Optional[Kubectl] = None) -> int:
    parser = argparse.ArgumentParser(prog="lugx-deploy", description="Rolling deployment for LUGX services")
    parser.add_argument("service", nargs="?", default="all", help="deployment name, or 'all'")
    parser.add_argument("tag", nargs="?", default="latest", help="image tag")
    args = parser.parse_args(argv)

    kubectl = kubectl or Kubectl()
    logger.info(f"Service: {args.service} Image Tag: {args.tag}")
    try:
        deploy(kubectl, args.service, args.tag)
    except RolloutFailed as e:
        logger.error(f"Rolling deployment failed at {e}")
        return 1
    except subprocess.CalledProcessError as e:
        logger.error(f"kubectl {' '.join(e.cmd[1:])} failed: {(e.stderr or '').strip()}")
        return 1

    listing = kubectl("get", "deployments", check=False)
    if listing.stdout:
        print(listing.stdout.rstrip())
    return 0


if __name__ == "__main__":
    sys.exit(main())
