from tldrcache.cli import main

raise SystemExit(main())
