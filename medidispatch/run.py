"""
MediDispatch Backend Runner
"""

import uvicorn
from medidispatch.core.config import Config


def main():
    """Run the MediDispatch backend server."""
    uvicorn.run(
        "medidispatch.api.main:app",
        host=Config.HOST,
        port=Config.PORT,
        reload=Config.DEBUG,
        log_level="info"
    )


if __name__ == "__main__":
    main()
