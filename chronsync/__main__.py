from chronsync.cli import main

raise SystemExit(main())
