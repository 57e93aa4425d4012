from pklformation.cli import main

raise SystemExit(main())
