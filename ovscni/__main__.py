from ovscni.main import main

raise SystemExit(main())
