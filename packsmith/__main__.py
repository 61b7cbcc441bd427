from packsmith.cli import main

main()
