import sys

from dotenv import load_dotenv

from stellarflow.main import main

load_dotenv()
sys.exit(main())
