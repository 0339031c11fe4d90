from opsnavigator.commands import commands_match


def test_option_order_does_not_matter() -> None:
    assert commands_match("docker run --name web -d -p 80:80 nginx", "docker run -d --name web -p 80:80 nginx")
    assert commands_match("docker run -p 80:80 --name web -d nginx", "docker run -d --name web -p 80:80 nginx")


def test_positional_order_matters() -> None:
    assert not commands_match("git push main origin", "git push origin main")


def test_compose_spellings_are_equivalent() -> None:
    assert commands_match("docker compose up -d", "docker-compose up -d")
    assert commands_match("docker-compose down", "docker compose down")


def test_long_and_short_aliases() -> None:
    assert commands_match("docker compose up --detach", "docker-compose up -d")
    assert commands_match('git commit --message "Initial commit"', 'git commit -m "Initial commit"')
    assert commands_match("git push --set-upstream origin main", "git push -u origin main")
    assert commands_match("kubectl apply --filename deployment.yaml", "kubectl apply -f deployment.yaml")


def test_long_option_with_equals_or_space() -> None:
    assert commands_match("kubectl scale deployment nginx --replicas 3", "kubectl scale deployment nginx --replicas=3")


def test_combined_short_flags() -> None:
    assert commands_match("docker ps -a", "docker ps --all")
    assert commands_match('git commit -am "fix"', 'git commit -a -m "fix"')


def test_quoting_is_normalized() -> None:
    assert commands_match("git commit -m 'Initial commit'", 'git commit -m "Initial commit"')


def test_blank_and_malformed_input_never_match() -> None:
    assert not commands_match("", "git status")
    assert not commands_match("   ", "git status")
    assert not commands_match('git commit -m "unterminated', 'git commit -m "unterminated"')
    assert not commands_match("git status", "")


def test_different_values_do_not_match() -> None:
    assert not commands_match("docker pull nginx:1.25", "docker pull nginx:latest")
    assert not commands_match("kubectl scale deployment nginx --replicas=2", "kubectl scale deployment nginx --replicas=3")
