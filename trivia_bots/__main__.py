from trivia_bots.cli import main

main()
