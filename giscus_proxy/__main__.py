import logging
import sys

import uvicorn

from giscus_proxy.app import create_app
from giscus_proxy.config import ServerSettings

logger = logging.getLogger("giscus_proxy")


def main() -> None:
    # stdout, so hosting platforms do not flag every access line as an error
    logging.basicConfig(
        stream=sys.stdout, level=logging.INFO, format="%(asctime)s %(message)s"
    )
    settings = ServerSettings.from_env()
    logger.info(
        "giscus proxy listening: bind=%s url=%s",
        settings.bind_addr,
        settings.public_url,
    )
    uvicorn.run(
        create_app(),
        host=settings.host,
        port=settings.port,
        access_log=False,
        log_config=None,
    )


if __name__ == "__main__":
    main()
